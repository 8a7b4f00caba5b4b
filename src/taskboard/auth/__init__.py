"""Authentication and authorization.

Tokens are issued by an external identity provider. We never see
passwords: every request carries an RS256 access token, verified
against the IdP's JWKS, and the claims resolve to a CurrentIdentity
(user id, email, normalized role) used for row-level scoping.
"""
