"""
Finance Tracker - Flask REST API

This module exposes the FinanceEngine over HTTP for the Controle Financeiro
Pessoal web client. It uses Flask with Flask-Login for session-based
authentication and serves JSON endpoints for:

Authentication:
- Owner login / logout and session check
- Password change

Financial Operations:
- Categories, transactions, installment groups and the initial balance
- Transaction attachments
- Goals, settings and custom categories
- Investments and portfolio

Analytics:
- Period, monthly, annual, category and installment reports
- Dashboard KPIs, insights and cached bundles

Data:
- CSV / JSON / Excel exports, backups and CSV statement import
- Event log, data counts and full reset

Every response has the shape {"success": bool, "message": str, ...}.

License: MIT
"""

import datetime
import io
import logging
from decimal import Decimal

from flask import Blueprint, Flask, Response, current_app, jsonify, request, send_file
from flask.json.provider import DefaultJSONProvider
from flask_cors import CORS
from flask_login import login_required

from finance_tracker import config as runtime_config
from finance_tracker.engine import FinanceEngine
from finance_tracker.session_controller import SessionController

logger = logging.getLogger(__name__)


class CustomJSONProvider(DefaultJSONProvider):
    """
    JSON provider for Decimal and date objects.

    Converts:
    - Decimal to float
    - datetime and date to ISO 8601 strings
    """
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (datetime.datetime, datetime.date)):
            return obj.isoformat()
        return super().default(obj)


api = Blueprint('api', __name__, url_prefix='/api')


# =============================================================================
# HELPERS
# =============================================================================

def get_engine():
    return current_app.extensions['finance_engine']


def get_session_controller():
    return current_app.extensions['finance_session']


def _json_body():
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _status_for(message):
    """Map an engine failure message to an HTTP status code."""
    text = (message or '').lower()
    if 'not found' in text and 'inactive' not in text:
        return 404
    if 'already' in text:
        return 409
    if 'error' in text:
        return 500
    return 400


def _result(success, message, **payload):
    body = {"success": success, "message": message}
    body.update(payload)
    if success:
        return jsonify(body)
    return jsonify(body), _status_for(message)


def _data_result(data, message):
    """Response for (data, message) operations: data None means failure."""
    if data is None:
        return _result(False, message)
    return _result(True, message, data=data)


def _filters_from_args():
    keys = ('start_date', 'end_date', 'type', 'category', 'payment_method', 'search', 'min_amount', 'max_amount')
    return {key: request.args[key] for key in keys if request.args.get(key)}


def _arg_bool(name):
    return str(request.args.get(name, '')).lower() in ('1', 'true', 'yes')


# =============================================================================
# PUBLIC ROUTES
# =============================================================================

@api.route('/health', methods=['GET'])
def health():
    return jsonify({"success": True, "message": "ok"})


@api.route('/config', methods=['GET'])
def public_config():
    return _result(True, "Config loaded.", data=get_engine().get_public_config())


# --- AUTHENTICATION API ROUTES ---

@api.route('/login', methods=['POST'])
def login():
    password = _json_body().get('password')
    success, message = get_session_controller().login(password)
    if success:
        return jsonify({"success": True, "message": message, "session": get_session_controller().get_session_info()})
    status_code = 400 if "required" in message else 503 if "not configured" in message else 401
    return jsonify({"success": False, "message": message}), status_code


@api.route('/logout', methods=['POST'])
@login_required
def logout():
    get_session_controller().logout()
    return jsonify({"success": True, "message": "You have been logged out."})


@api.route('/check_session', methods=['GET'])
@login_required
def check_session():
    return jsonify({"success": True, "message": "Session active.", **get_session_controller().get_session_info()})


@api.route('/change_password', methods=['POST'])
@login_required
def change_password():
    data = _json_body()
    success, message = get_engine().change_password(data.get('current_password'), data.get('new_password'))
    if success:
        return jsonify({"success": True, "message": message})
    return jsonify({"success": False, "message": message}), 400


@api.route('/bootstrap', methods=['GET'])
@login_required
def bootstrap():
    return _result(True, "Initial data loaded.", data=get_engine().get_initial_bundle())


# =============================================================================
# CATEGORIES
# =============================================================================

@api.route('/categories', methods=['GET'])
@login_required
def list_categories():
    active = request.args.get('active')
    is_active = None if active in (None, '') else active.lower() in ('1', 'true', 'yes')
    categories = get_engine().list_categories(kind=request.args.get('kind') or None, is_active=is_active)
    return _result(True, "Categories loaded.", data=categories)


@api.route('/categories', methods=['POST'])
@login_required
def create_category():
    success, message, category = get_engine().create_category(_json_body())
    return _result(success, message, data=category)


@api.route('/categories/<int:category_id>', methods=['GET', 'PUT'])
@login_required
def manage_category(category_id):
    engine = get_engine()
    if request.method == 'PUT':
        success, message, category = engine.update_category(category_id, _json_body())
        return _result(success, message, data=category)
    category = engine.get_category(category_id)
    if not category:
        return _result(False, "Category not found.")
    return _result(True, "Category loaded.", data=category)


@api.route('/categories/<int:category_id>/deactivate', methods=['POST'])
@login_required
def deactivate_category(category_id):
    return _result(*get_engine().deactivate_category(category_id))


@api.route('/categories/<int:category_id>/activate', methods=['POST'])
@login_required
def activate_category(category_id):
    return _result(*get_engine().activate_category(category_id))


# =============================================================================
# TRANSACTIONS
# =============================================================================

@api.route('/transactions', methods=['GET'])
@login_required
def list_transactions():
    page = get_engine().list_transactions(
        _filters_from_args(),
        page=request.args.get('page', 1),
        page_size=request.args.get('page_size', 50)
    )
    return _result(True, "Transactions loaded.", data=page)


@api.route('/transactions', methods=['POST'])
@login_required
def create_transaction():
    success, message, payload = get_engine().create_transaction(_json_body())
    return _result(success, message, data=payload)


@api.route('/transactions/<int:transaction_id>', methods=['GET', 'PUT', 'DELETE'])
@login_required
def manage_transaction(transaction_id):
    engine = get_engine()
    if request.method == 'PUT':
        success, message, tx = engine.update_transaction(transaction_id, _json_body())
        return _result(success, message, data=tx)
    if request.method == 'DELETE':
        return _result(*engine.delete_transaction(transaction_id))
    tx = engine.get_transaction(transaction_id)
    if not tx:
        return _result(False, "Transaction not found.")
    return _result(True, "Transaction loaded.", data=tx)


@api.route('/installments/<parent_id>', methods=['GET', 'DELETE'])
@login_required
def manage_installment_group(parent_id):
    engine = get_engine()
    if request.method == 'DELETE':
        success, message, deleted = engine.delete_installment_group(parent_id)
        return _result(success, message, deleted=deleted)
    group = engine.get_installment_group(parent_id)
    if not group:
        return _result(False, "Installment group not found.")
    return _result(True, "Installments loaded.", data=group)


@api.route('/initial_balance', methods=['GET', 'POST'])
@login_required
def initial_balance():
    engine = get_engine()
    if request.method == 'POST':
        data = _json_body()
        success, message, tx = engine.set_initial_balance(data.get('amount'), data.get('date'))
        return _result(success, message, data=tx)
    return _result(True, "Initial balance loaded.", data=engine.get_initial_balance())


# --- ATTACHMENTS ---

@api.route('/transactions/<int:transaction_id>/file', methods=['GET', 'POST', 'DELETE'])
@login_required
def transaction_file(transaction_id):
    engine = get_engine()
    if request.method == 'POST':
        success, message, info = engine.upload_transaction_file(transaction_id, _json_body())
        return _result(success, message, data=info)
    if request.method == 'DELETE':
        return _result(*engine.remove_transaction_file(transaction_id))
    info, message = engine.get_transaction_file(transaction_id)
    if info is None:
        return jsonify({"success": False, "message": message}), 404
    return _result(True, message, data=info)


@api.route('/upload_folder', methods=['GET', 'PUT'])
@login_required
def upload_folder():
    engine = get_engine()
    if request.method == 'PUT':
        success, message = engine.set_upload_folder(_json_body().get('path'))
        return _result(success, message, path=str(engine.get_upload_folder()))
    return _result(True, "Upload folder loaded.", path=str(engine.get_upload_folder()))


# =============================================================================
# REPORTS
# =============================================================================

@api.route('/reports/period', methods=['GET'])
@login_required
def report_by_period():
    args = request.args
    return _data_result(*get_engine().generate_report_by_period(args.get('start_date'), args.get('end_date')))


@api.route('/reports/monthly', methods=['GET'])
@login_required
def monthly_report():
    return _data_result(*get_engine().generate_monthly_report(request.args.get('year'), request.args.get('month')))


@api.route('/reports/annual', methods=['GET'])
@login_required
def annual_report():
    return _data_result(*get_engine().generate_annual_report(request.args.get('year')))


@api.route('/reports/category', methods=['GET'])
@login_required
def category_report():
    args = request.args
    return _data_result(*get_engine().generate_category_report(
        args.get('category'), args.get('start_date'), args.get('end_date')))


@api.route('/reports/top_categories', methods=['GET'])
@login_required
def top_categories():
    args = request.args
    return _data_result(*get_engine().get_top_categories(
        args.get('type', 'debit'), args.get('start_date'), args.get('end_date'), args.get('limit', 5)))


@api.route('/reports/balance_evolution', methods=['GET'])
@login_required
def balance_evolution():
    args = request.args
    return _data_result(*get_engine().get_balance_evolution(args.get('start_date'), args.get('end_date')))


@api.route('/reports/compare', methods=['POST'])
@login_required
def compare_periods():
    data = _json_body()
    return _data_result(*get_engine().compare_periods(
        data.get('period1_start'), data.get('period1_end'), data.get('period2_start'), data.get('period2_end')))


@api.route('/reports/installments', methods=['GET'])
@login_required
def installment_report():
    args = request.args
    payment_method = args.get('payment_method')
    if payment_method:
        return _data_result(*get_engine().generate_installment_report_by_payment_method(
            payment_method, args.get('start_date'), args.get('end_date')))
    return _data_result(*get_engine().generate_installment_report(args.get('start_date'), args.get('end_date')))


@api.route('/reports/installments/projection', methods=['GET'])
@login_required
def installment_projection():
    return _data_result(*get_engine().get_installment_projection(request.args.get('months', 6)))


@api.route('/reports/installments/commitment', methods=['GET'])
@login_required
def installment_commitment():
    return _data_result(*get_engine().analyze_installment_commitment(request.args.get('monthly_income')))


# =============================================================================
# DASHBOARD
# =============================================================================

@api.route('/dashboard', methods=['GET'])
@login_required
def dashboard():
    return _result(True, "Dashboard loaded.", data=get_engine().get_dashboard_bundle(force=_arg_bool('force')))


@api.route('/dashboard/kpis', methods=['GET'])
@login_required
def dashboard_kpis():
    return _result(True, "KPIs loaded.", data=get_engine().get_main_kpis())


@api.route('/dashboard/insights', methods=['GET'])
@login_required
def dashboard_insights():
    return _result(True, "Insights loaded.", data=get_engine().get_financial_insights())


@api.route('/dashboard/recent', methods=['GET'])
@login_required
def recent_transactions():
    return _result(True, "Recent transactions loaded.",
                   data=get_engine().get_recent_transactions(request.args.get('limit', 10)))


@api.route('/dashboard/evolution', methods=['GET'])
@login_required
def monthly_evolution():
    return _result(True, "Chart loaded.", data=get_engine().get_monthly_evolution_chart(request.args.get('months', 6)))


@api.route('/dashboard/upcoming_installments', methods=['GET'])
@login_required
def upcoming_installments():
    return _result(True, "Upcoming installments loaded.",
                   data=get_engine().get_upcoming_installments(request.args.get('months', 3)))


@api.route('/dashboard/payment_methods', methods=['GET'])
@login_required
def payment_method_distribution():
    args = request.args
    return _result(True, "Distribution loaded.",
                   data=get_engine().get_payment_method_distribution(args.get('start_date'), args.get('end_date')))


@api.route('/dashboard/installment_stats', methods=['GET'])
@login_required
def installment_stats():
    return _result(True, "Installment stats loaded.", data=get_engine().get_installment_stats())


# =============================================================================
# SETTINGS
# =============================================================================

@api.route('/settings', methods=['GET', 'PUT'])
@login_required
def settings():
    engine = get_engine()
    if request.method == 'PUT':
        success, message, values = engine.update_settings(_json_body())
        return _result(success, message, data=values)
    return _result(True, "Settings loaded.", data=engine.get_settings())


@api.route('/custom_categories', methods=['GET', 'POST'])
@login_required
def custom_categories():
    engine = get_engine()
    if request.method == 'POST':
        success, message, categories = engine.add_custom_category(_json_body())
        return _result(success, message, data=categories)
    return _result(True, "Custom categories loaded.", data=engine.get_custom_categories())


@api.route('/custom_categories/<category_id>', methods=['DELETE'])
@login_required
def remove_custom_category(category_id):
    success, message, categories = get_engine().remove_custom_category(category_id)
    return _result(success, message, data=categories)


# --- EMAIL REPORTS ---

@api.route('/email_reports/preview', methods=['POST'])
@login_required
def preview_email_report():
    data = _json_body()
    return _data_result(*get_engine().build_email_report(data.get('report_type'), data.get('options')))


@api.route('/email_reports', methods=['POST'])
@login_required
def send_email_report():
    data = _json_body()
    success, message, payload = get_engine().send_email_report(data.get('report_type'), data.get('options'))
    return _result(success, message, data=payload)


# =============================================================================
# GOALS
# =============================================================================

@api.route('/goals', methods=['GET', 'POST'])
@login_required
def goals():
    engine = get_engine()
    if request.method == 'POST':
        success, message, goal = engine.create_goal(_json_body())
        return _result(success, message, data=goal)
    return _result(True, "Goals loaded.", data=engine.get_goals(status=request.args.get('status') or None))


@api.route('/goals/<int:goal_id>', methods=['DELETE'])
@login_required
def delete_goal(goal_id):
    return _result(*get_engine().delete_goal(goal_id))


@api.route('/goals/<int:goal_id>/progress', methods=['PUT'])
@login_required
def update_goal_progress(goal_id):
    success, message, goal = get_engine().update_goal_progress(goal_id, _json_body().get('amount'))
    return _result(success, message, data=goal)


@api.route('/goals/recalculate', methods=['POST'])
@login_required
def recalculate_goals():
    updated = get_engine().update_all_goals_progress()
    return _result(True, f"{updated} goals recalculated.", updated=updated)


# =============================================================================
# EXPORT AND BACKUP
# =============================================================================

def _download_headers(filename):
    return {'Content-Disposition': f'attachment; filename="{filename}"'}


@api.route('/export/csv', methods=['GET'])
@login_required
def export_csv():
    success, message, payload = get_engine().export_to_csv(_filters_from_args())
    if not success:
        return _result(success, message)
    # BOM so spreadsheet apps detect UTF-8
    return Response('\ufeff' + payload['csv'], mimetype='text/csv; charset=utf-8',
                    headers=_download_headers(payload['filename']))


@api.route('/export/json', methods=['GET'])
@login_required
def export_json():
    success, message, payload = get_engine().export_to_json(_filters_from_args())
    if not success:
        return _result(success, message)
    return Response(payload['json'], mimetype='application/json',
                    headers=_download_headers(payload['filename']))


@api.route('/export/excel', methods=['GET'])
@login_required
def export_excel():
    success, message, payload = get_engine().export_to_excel(_filters_from_args())
    if not success:
        return _result(success, message)
    return send_file(
        io.BytesIO(payload['content']),
        mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        as_attachment=True,
        download_name=payload['filename']
    )


@api.route('/backups', methods=['GET', 'POST'])
@login_required
def backups():
    engine = get_engine()
    if request.method == 'POST':
        success, message, info = engine.create_backup()
        return _result(success, message, data=info)
    return _result(True, "Backups loaded.", data=engine.list_backups())


# =============================================================================
# STATEMENT IMPORT
# =============================================================================

@api.route('/import/analyze', methods=['POST'])
@login_required
def analyze_statement():
    data = _json_body()
    return _data_result(*get_engine().analyze_statement_csv(data.get('content'), data.get('options')))


@api.route('/import/preview', methods=['POST'])
@login_required
def preview_statement():
    data = _json_body()
    return _data_result(*get_engine().preview_statement_import(data.get('content'), data.get('options')))


@api.route('/import/commit', methods=['POST'])
@login_required
def commit_statement():
    data = _json_body()
    success, message, result = get_engine().commit_statement_import(data.get('content'), data.get('options'))
    return _result(success, message, data=result)


@api.route('/import/batches', methods=['GET'])
@login_required
def import_batches():
    return _result(True, "Import batches loaded.", data=get_engine().list_import_batches())


@api.route('/import/batches/<batch_id>', methods=['DELETE'])
@login_required
def undo_import(batch_id):
    success, message, deleted = get_engine().undo_statement_import(batch_id)
    return _result(success, message, deleted=deleted)


# =============================================================================
# INVESTMENTS
# =============================================================================

@api.route('/investments', methods=['GET', 'POST'])
@login_required
def investments():
    engine = get_engine()
    if request.method == 'POST':
        success, message, investment = engine.upsert_investment(_json_body())
        return _result(success, message, data=investment)
    return _result(True, "Investments loaded.",
                   data=engine.list_investments(include_inactive=_arg_bool('include_inactive')))


@api.route('/investments/<int:investment_id>', methods=['PUT', 'DELETE'])
@login_required
def manage_investment(investment_id):
    engine = get_engine()
    if request.method == 'DELETE':
        return _result(*engine.delete_investment(investment_id))
    data = dict(_json_body(), id=investment_id)
    success, message, investment = engine.upsert_investment(data)
    return _result(success, message, data=investment)


@api.route('/investments/<int:investment_id>/price', methods=['PUT'])
@login_required
def update_investment_price(investment_id):
    data = _json_body()
    success, message, investment = get_engine().update_investment_price(investment_id, data.get('price'), data.get('at'))
    return _result(success, message, data=investment)


@api.route('/investments/transactions', methods=['GET', 'POST'])
@login_required
def investment_transactions():
    engine = get_engine()
    if request.method == 'POST':
        success, message, tx = engine.add_investment_transaction(_json_body())
        return _result(success, message, data=tx)
    args = request.args
    entries = engine.list_investment_transactions(
        investment_id=args.get('investment_id') or None,
        date_from=args.get('date_from'),
        date_to=args.get('date_to'),
        limit=args.get('limit', 50)
    )
    return _result(True, "Entries loaded.", data=entries)


@api.route('/investments/transactions/<int:tx_id>', methods=['DELETE'])
@login_required
def delete_investment_transaction(tx_id):
    return _result(*get_engine().delete_investment_transaction(tx_id))


@api.route('/investments/portfolio', methods=['GET'])
@login_required
def portfolio():
    return _result(True, "Portfolio loaded.", data=get_engine().get_portfolio())


@api.route('/investments/bundle', methods=['GET'])
@login_required
def portfolio_bundle():
    return _result(True, "Portfolio loaded.", data=get_engine().get_portfolio_bundle(force=_arg_bool('force')))


# =============================================================================
# LOGS AND SYSTEM
# =============================================================================

@api.route('/logs', methods=['GET'])
@login_required
def get_logs():
    args = request.args
    entries = get_engine().get_logs(
        level=args.get('level') or None,
        module=args.get('module') or None,
        start_date=args.get('start_date'),
        end_date=args.get('end_date'),
        limit=args.get('limit', 100)
    )
    return _result(True, "Logs loaded.", data=entries)


@api.route('/logs', methods=['DELETE'])
@login_required
def clean_logs():
    days = request.args.get('days', 90, type=int)
    removed = get_engine().clean_old_logs(days)
    return _result(True, f"{removed} log entries removed.", removed=removed)


@api.route('/system/counts', methods=['GET'])
@login_required
def system_counts():
    return _result(True, "Counts loaded.", data=get_engine().count_system_data())


@api.route('/system/reset', methods=['POST'])
@login_required
def reset_system():
    success, message, details = get_engine().reset_system(_json_body().get('confirmation_code'))
    return _result(success, message, data=details)


# =============================================================================
# FLASK APPLICATION SETUP
# =============================================================================

def create_app(config=None):
    """
    Build the Flask application.

    Args:
        config (dict): Flask config overrides. ENGINE may hold a ready
            FinanceEngine; otherwise DATABASE_PATH, BACKUP_DIR, UPLOAD_DIR and
            MAILER are used to build and initialize one.
    """
    app = Flask(__name__)
    app.json = CustomJSONProvider(app)
    app.config['SECRET_KEY'] = runtime_config.SECRET_KEY
    app.config['JSON_SORT_KEYS'] = False

    config = config or {}
    engine = config.get('ENGINE')
    if engine is None:
        engine = FinanceEngine(
            db_path=config.get('DATABASE_PATH'),
            mailer=config.get('MAILER'),
            backup_dir=config.get('BACKUP_DIR'),
            upload_dir=config.get('UPLOAD_DIR')
        )
        success, message = engine.initialize()
        if not success:
            logger.error("[API] Engine initialization failed: %s", message)

    app.extensions['finance_engine'] = engine
    app.extensions['finance_session'] = SessionController(app, engine)

    app.config.update({k: v for k, v in config.items() if k.isupper() and k != 'ENGINE'})

    # Enable CORS for the web client (allows requests from different origins)
    CORS(app, supports_credentials=True)
    app.register_blueprint(api)

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"success": False, "message": "Resource not found."}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"success": False, "message": "Method not allowed."}), 405

    @app.errorhandler(500)
    def internal_error(error):
        original = getattr(error, 'original_exception', None) or error
        engine.log_error('API', request.path, original)
        return jsonify({"success": False, "message": "An unexpected error occurred."}), 500

    return app
