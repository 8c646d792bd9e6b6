"""
Relay service application package.

Validates inbound bearer tokens and re-projects the caller's identity onto
downstream services, either by forwarding the token unchanged or by
exchanging it On-Behalf-Of the user for a token scoped to another audience.
"""
