"""FormFill Meta information.
   FormFill keeps one form record encrypted at rest until it expires.
"""
__title__ = 'formfill'
__description__ = (
   'FormFill keeps one form record encrypted at rest '
   'with AES-256 until it expires.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2026 FormFill Developers'
__author__ = 'FormFill Developers'
__license__ = 'Apache-2.0'
