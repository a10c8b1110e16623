"""
Serverless Cost Calculator.

Estimates the monthly cost of moving an existing MySQL-compatible workload
to a serverless, request-unit-billed database service.
"""

__version__ = "0.3.0"
