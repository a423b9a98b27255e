"""
Muster Kernel

Authorization and data-integrity rules for a youth-organization membership
register:
- Role hierarchy (officer < captain < admin) with per-entity access policy
- Section-aware mark validation
- Single-use, time-bounded invite codes
- Audit trail with admin-only revert
"""

__version__ = "0.1.0"
