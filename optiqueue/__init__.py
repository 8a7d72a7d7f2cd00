"""
Image Optimization Job Queue

A bounded, in-process job scheduler that keeps slow image optimization off the
request path: priority ordering, backpressure, retry/backoff, timeouts and
result expiry, fronted by a small FastAPI upload service.
"""

__version__ = "1.0.0"
