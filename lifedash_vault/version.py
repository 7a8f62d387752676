"""LifeDash Vault Meta information.
   LifeDash Vault keeps dashboard credentials encrypted with a master passphrase.
"""
__title__ = 'lifedash_vault'
__description__ = (
   'Zero-knowledge password vault for the LifeDash personal dashboard: '
   'master passphrase key derivation and authenticated encryption.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2026 LifeDash Developers'
__author__ = 'LifeDash Developers'
__author_email__ = 'dev@lifedash.app'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/lifedash/lifedash-vault'
