"""Error handlers for hosts that serve the adapter from Flask.

``AccessDenied`` is the only error shown as-is. Every other adapter error is
logged in full and answered with a generic authentication failure so that
provider internals never reach the browser.
"""
from flask import jsonify

from idp_adapter.core.errors import AccessDenied, AuthProviderError, InvalidPrincipalID, InvalidPrincipalType


def register_error_handlers(app):
    """Register adapter error handlers with the Flask app."""

    @app.errorhandler(AccessDenied)
    def access_denied(error):
        """Handle a denied login."""
        return jsonify({"error": "Unauthorized", "message": error.message}), error.status_code

    @app.errorhandler(InvalidPrincipalID)
    def invalid_principal(error):
        """Handle a malformed principal id."""
        app.logger.warning(f"Rejected principal id: {error}")
        return jsonify({"error": "Bad Request", "message": "Invalid principal id"}), 400

    @app.errorhandler(InvalidPrincipalType)
    def invalid_principal_type(error):
        """Handle an unknown principal type filter."""
        return jsonify({"error": "Bad Request", "message": "Invalid principal type"}), 400

    @app.errorhandler(AuthProviderError)
    def provider_error(error):
        """Handle any other protocol, directory or configuration failure."""
        # ALWAYS log the detail server-side, never in the response
        app.logger.error(f"Authentication provider error ({type(error).__name__}): {error}", exc_info=True)
        return jsonify({"error": "Unauthorized", "message": "Authentication failed"}), 401
