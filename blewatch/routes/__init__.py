# Routes package - registers all blueprints with the Flask app

def register_blueprints(app):
    """Register all route blueprints with the Flask app."""
    from .discovery import discovery_bp

    app.register_blueprint(discovery_bp)
