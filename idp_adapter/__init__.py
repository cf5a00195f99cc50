"""Identity provider adapter: OIDC login and Keycloak directory search.

To log users in:
    from idp_adapter.core.oidc import OIDCProvider

To search a Keycloak realm:
    from idp_adapter.core.keycloak import KeycloakOIDCProvider

To render adapter errors from a Flask host:
    from idp_adapter.api.errors import register_error_handlers
"""
# Nothing is imported here; the core must import without Flask
