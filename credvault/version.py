"""Credvault Meta information.
   Credvault keeps login credentials encrypted at rest and mints
   self-contained share links for single credentials.
"""
__title__ = 'credvault'
__description__ = (
   'Local credential vault with session-scoped keys '
   'and one-time share links.'
)
__version__ = '0.3.0'
__license__ = 'Apache-2.0'
