"""
ReelQueue - asynchronous generation job queue for the AI video dashboard.
"""
