"""
ERP Kernel

Pure document core for the ERP client:
- Exact, currency-tagged Money arithmetic
- Document and line-item value objects
- Declarative lifecycle state machines
- Typed, machine-readable errors
- Structured logging
"""

__version__ = "0.1.0"
