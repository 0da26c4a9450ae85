"""SSO identity service"""
