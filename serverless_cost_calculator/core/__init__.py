"""
Core modules for Serverless Cost Calculator.

This package contains the workload data model, the usage normalizer
and the per-region cost calculator. Nothing in here performs I/O.
"""
