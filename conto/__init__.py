"""
Conto engine.
Riconciliazione e ripartizione competenze per i conti proselitismo e servizi.
"""

__version__ = "1.0.0"
