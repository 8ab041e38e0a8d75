"""
spc_harmonize - North Sea submarine power cable harmonization

Source -> Normalize -> Condition -> Merge/Finalize -> Export
"""

__version__ = "0.3.0"
