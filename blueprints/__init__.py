"""
Blueprint registration for the Exam Prep Tracker API.

Blueprints are registered without URL prefixes; every route spells out its
full /api path.
"""

from __future__ import annotations


def register_blueprints(app):
    from auth import auth_bp
    from blueprints.core import bp as core_bp
    from blueprints.books import bp as books_bp
    from blueprints.goals import bp as goals_bp
    from blueprints.sessions import bp as sessions_bp
    from blueprints.syllabus import bp as syllabus_bp
    from blueprints.resources import bp as resources_bp
    from blueprints.newspaper import bp as newspaper_bp
    from blueprints.groups import bp as groups_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(core_bp)
    app.register_blueprint(books_bp)
    app.register_blueprint(goals_bp)
    app.register_blueprint(sessions_bp)
    app.register_blueprint(syllabus_bp)
    app.register_blueprint(resources_bp)
    app.register_blueprint(newspaper_bp)
    app.register_blueprint(groups_bp)
