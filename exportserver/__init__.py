"""
Export server: HTTP API, job store, queue and worker for deck exports.
"""
