"""
Credential and MFA authentication service.

Password login with email OTP or authenticator-app second factor, session
tokens with refresh rotation, and OTP-based password reset.
"""

__version__ = "1.0.0"
