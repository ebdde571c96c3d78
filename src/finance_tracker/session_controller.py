"""
Session Controller for Finance Tracker
Centralized session management using Flask-Login

This module provides:
- The single owner user for Flask-Login
- Session management with a fixed lifetime
- JSON 401 responses for unauthenticated API calls

Usage:
    from finance_tracker.session_controller import SessionController

    session_ctrl = SessionController(app, engine)

    @app.route('/api/protected')
    @login_required
    def protected_route():
        return jsonify(session_ctrl.get_session_info())
"""

import datetime

from flask import jsonify, session
from flask_login import LoginManager, UserMixin, current_user, login_user, logout_user

from finance_tracker import config

OWNER_ID = 'owner'


class User(UserMixin):
    """The application owner. There is exactly one."""

    def __init__(self, id=OWNER_ID):
        self.id = id


class SessionController:
    """
    Manages the owner session for the Flask application.

    Features:
    - Flask-Login integration
    - Permanent sessions expiring after SESSION_DURATION
    - Login and logout recorded in the engine's event log
    """

    def __init__(self, app, engine, session_config=None):
        """
        Args:
            app: Flask application instance
            engine: FinanceEngine used to verify the password and log events
            session_config: Optional dict with session cookie configuration
        """
        self.app = app
        self.engine = engine
        self.login_manager = LoginManager()

        self._configure_session(session_config)
        self._init_login_manager()

    def _configure_session(self, session_config=None):
        """Configure session lifetime and cookie security settings."""
        if session_config is None:
            session_config = {
                'SESSION_COOKIE_SAMESITE': 'Lax',
                'SESSION_COOKIE_HTTPONLY': True,
            }
        self.app.config['PERMANENT_SESSION_LIFETIME'] = datetime.timedelta(seconds=config.SESSION_DURATION)
        for key, value in session_config.items():
            self.app.config[key] = value

    def _init_login_manager(self):
        self.login_manager.init_app(self.app)

        @self.login_manager.user_loader
        def load_user(user_id):
            if user_id == OWNER_ID:
                return User()
            return None

        @self.login_manager.unauthorized_handler
        def unauthorized():
            return jsonify(success=False, message="Authorization required. Please log in."), 401

    def login(self, password):
        """
        Verify the owner password and open a session.

        Returns:
            tuple: (success bool, message str)
        """
        success, message = self.engine.login(password)
        if success:
            session.permanent = True
            session['login_at'] = datetime.datetime.now().isoformat(timespec='seconds')
            login_user(User())
        return success, message

    def logout(self):
        """Log out the owner and clear the session."""
        logout_user()
        session.clear()
        self.engine.log_info('AUTH', 'logout', 'Logout')
        return True

    def is_authenticated(self):
        return current_user.is_authenticated

    def get_session_info(self):
        """
        Returns:
            dict: logged_in flag and, when logged in, login time and expiry
        """
        if not self.is_authenticated():
            return {'logged_in': False}
        info = {'logged_in': True, 'user': current_user.id}
        login_at = session.get('login_at')
        if login_at:
            lifetime = self.app.permanent_session_lifetime
            expires = datetime.datetime.fromisoformat(login_at) + lifetime
            info['login_at'] = login_at
            info['expires_at'] = expires.isoformat(timespec='seconds')
        return info


__all__ = ['SessionController', 'User', 'OWNER_ID']
