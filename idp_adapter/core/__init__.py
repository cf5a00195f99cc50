"""Core provider logic.

Module Structure:
    - principals.py : Principal model, id format/parse, resolver
    - access.py     : Access gate and reference policy / membership services
    - transport.py  : Per-call HTTP sessions with optional client certificate
    - errors.py     : Exception taxonomy
    - oidc/         : Authorization-code login flow, generic OIDC provider
    - keycloak/     : Directory search client, Keycloak OIDC provider

Usage Pattern:
    Submodules are not auto-imported. Import explicitly when needed:
        from idp_adapter.core.keycloak import KeycloakOIDCProvider
        from idp_adapter.core.principals import parse_principal_id
"""
