"""
Token authentication for the ``Authorization: Token <key>`` header.

JWT bearer tokens are handled by simplejwt's ``JWTAuthentication``; this
class keeps the DRF token scheme available for service accounts and
scripts under a stable import path for ``REST_FRAMEWORK`` settings.
"""
from __future__ import annotations

from rest_framework import authentication


class TokenAuthentication(authentication.TokenAuthentication):
    keyword = 'Token'
