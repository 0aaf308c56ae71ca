"""
Services Package

Digestion pipeline services: job queues, chunked digestion, progress
tracking with notifications, monitoring, and the processor and workers that
run jobs.
"""
