"""Session Keystore Meta information.
   Session Keystore keeps wallet keys and delegated session keys encrypted at rest.
"""
__title__ = 'session_keystore'
__description__ = (
   'Encrypted credential store and session-key lifecycle manager '
   'for delegated wallet keys.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2026 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
