"""azbulk - bulk VM lifecycle orchestration on Azure Compute Schedule

Philosophy:
- Ruthless simplicity
- Brick architecture (self-contained modules)
- Security by design (no credentials in code)
- Partial failure is a result, not a crash

azbulk batches large lists of virtual machine IDs, submits one bulk action
per batch in parallel, and polls every batch to completion.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
