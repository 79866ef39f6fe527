"""Stellar Custody Meta information.
   Stellar Custody keeps per-user Stellar keys encrypted at rest and
   signs transactions on the user's behalf.
"""
__title__ = 'stellar_custody'
__description__ = (
   'Custodial Stellar key management: envelope-encrypted wallets '
   'and server-side transaction signing.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2025 Stellar Custody Authors'
__author__ = 'Stellar Custody Authors'
__license__ = 'Apache-2.0'
