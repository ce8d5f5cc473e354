"""
Centralized Blueprint Registration
All blueprints MUST be registered inside register_all_blueprints(app)
"""

def register_all_blueprints(app):

    # Root
    from agrolink.routes.root import root_bp
    app.register_blueprint(root_bp)

    # Auth
    from agrolink.routes.auth.auth_routes import auth_bp
    app.register_blueprint(auth_bp)

    # Marketplace modules
    from agrolink.routes.catalog_routes import catalog_bp
    from agrolink.routes.request_routes import requests_bp
    from agrolink.routes.settlement_routes import settlement_bp
    from agrolink.routes.dashboard_routes import dashboard_bp

    app.register_blueprint(catalog_bp)
    app.register_blueprint(requests_bp)
    app.register_blueprint(settlement_bp)
    app.register_blueprint(dashboard_bp)

    print("✓ All blueprints registered")
