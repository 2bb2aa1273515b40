"""
Core modules for the AI gateway.

This package contains prompt sanitization and validation, the shared-key
quota ledger, prompt assembly, and the generation and plan-analysis flows.
"""
