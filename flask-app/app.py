# flask-app/app.py

import logging
import os
import time
from functools import wraps
from logging.handlers import RotatingFileHandler

from flask import Blueprint, Flask, current_app, jsonify, request, send_file, session
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

# --- Configuration ---
# Config object loads variables from .env
from config import Config

from errors import Forbidden, InvalidInput, IOFailure, MediChainError, NotFound, Unauthorized
from models import Role
from persistence import JsonPersistence
from schemas import CreateUserRequest, GrantAccessRequest, LoginRequest, RecordUploadForm, validate_payload
from storage import Storage
from utils import allowed_file, build_upload_filename, file_extension, is_wallet_address, same_address

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'

api = Blueprint('api', __name__, url_prefix='/api')


# --- Logging ---

def configure_logging(app):
    """Console logging, plus a rotating file when LOG_FILE is set."""
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)

    # Remove handlers from a previous create_app() to prevent duplicates
    root = logging.getLogger()
    for handler in root.handlers[:]:
        if getattr(handler, 'medichain_handler', False):
            root.removeHandler(handler)

    handlers = [logging.StreamHandler()]
    if app.config.get('LOG_FILE'):
        handlers.append(RotatingFileHandler(app.config['LOG_FILE'], maxBytes=1024 * 1024,
                                            backupCount=10, delay=True))
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
        handler.medichain_handler = True
        root.addHandler(handler)

    root.setLevel(level)
    app.logger.setLevel(level)
    # Disable werkzeug's per-request logging
    logging.getLogger('werkzeug').setLevel(logging.ERROR)


# --- Session Helpers ---

def get_storage():
    return current_app.extensions['medichain_storage']


def get_current_user():
    """Session identity as {'address': ..., 'role': ...}, or None."""
    return session.get('user')


def login_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if not get_current_user():
            raise Unauthorized("Unauthorized")
        return view(*args, **kwargs)
    return wrapper


def is_patient(user):
    return user['role'] == Role.PATIENT.value


def is_doctor(user):
    return user['role'] == Role.DOCTOR.value


# --- Request Helpers ---

def parse_id(raw, label):
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise InvalidInput(f"Invalid {label} ID")


def required_query_arg(name, label):
    value = (request.args.get(name) or '').strip()
    if not value:
        raise InvalidInput(f"{label} address is required")
    return value


def load_record(record_id):
    record = get_storage().get_record(parse_id(record_id, 'record'))
    if record is None:
        raise NotFound("Record not found")
    return record


def authorize_record(user, record, action):
    """Patients act on their own records; doctors need an active grant covering the record."""
    if is_patient(user):
        if not record.is_owned_by(user['address']):
            raise Forbidden(f"You can only {action} your own records")
    elif not get_storage().has_access(user['address'], record.patient_address, record.id):
        raise Forbidden(f"You don't have access to {action} this record")


def record_file_or_404(record):
    if not record.file_path or not os.path.exists(record.file_path):
        raise NotFound("File not found")
    return os.path.abspath(record.file_path)


# --- Basic Routes ---

@api.route('/health')
def health_check():
    return jsonify({"status": "ok", "timestamp": int(time.time())})


# --- Auth Routes ---

@api.route('/auth/login', methods=['POST'])
def login():
    """Stores the caller's address and role in the session. The address must be registered."""
    payload = validate_payload(LoginRequest, request.get_json(silent=True))

    user = get_storage().get_user_by_address(payload.address)
    if user is None:
        raise NotFound("User not registered")
    if user.role != payload.role:
        raise Forbidden(f"Address is registered as a {user.role.value}")

    session.clear()
    session.permanent = True
    session['user'] = {'address': user.address, 'role': user.role.value}
    current_app.logger.info("Login: %s as %s", user.address, user.role.value)
    return jsonify({"message": "Login successful", "address": user.address, "role": user.role.value})


@api.route('/auth/logout', methods=['POST'])
def logout():
    """Logs the user out by clearing the session."""
    session.clear()
    return jsonify({"message": "Logout successful"})


@api.route('/auth/check')
def check_auth():
    user = get_current_user()
    if not user:
        return jsonify({"authenticated": False})
    return jsonify({"authenticated": True, "address": user['address'], "role": user['role']})


# --- User Routes ---

@api.route('/users/check/<string:address>')
def check_user(address):
    role = get_storage().user_exists(address)
    if role is None:
        return jsonify({"exists": False})
    return jsonify({"exists": True, "role": role.value})


@api.route('/users', methods=['POST'])
def create_user():
    """Handles new user registration (Patient or Doctor)."""
    payload = validate_payload(CreateUserRequest, request.get_json(silent=True))
    if current_app.config.get('STRICT_ADDRESS_FORMAT') and not is_wallet_address(payload.address):
        raise InvalidInput("Invalid wallet address format")

    user = get_storage().register_user(payload.address, payload.role)
    return jsonify(user.to_json()), 201


# --- Medical Record Routes ---

@api.route('/records', methods=['POST'])
@login_required
def upload_record():
    """Stores an uploaded file under UPLOADS_PATH and creates its record."""
    user = get_current_user()
    storage = get_storage()

    file = request.files.get('file')
    if file is None or file.filename == '':
        raise InvalidInput("No file uploaded")
    if not allowed_file(file.filename, current_app.config['ALLOWED_EXTENSIONS']):
        raise InvalidInput("Only PDF, PNG, JPG, and GIF files are allowed")

    form = validate_payload(RecordUploadForm, request.form.to_dict())

    with storage.transaction():
        if is_patient(user):
            if not same_address(user['address'], form.patientAddress):
                raise Forbidden("You can only upload records for yourself")
        elif not storage.active_grants(user['address'], form.patientAddress):
            raise Forbidden("You do not have permission to add records for this patient")

        file_path = os.path.join(current_app.config['UPLOADS_PATH'], build_upload_filename(file.filename))
        try:
            file.save(file_path)
        except OSError as e:
            current_app.logger.exception("Error saving upload to %s", file_path)
            raise IOFailure(f"Failed to store uploaded file: {e}")

        record = storage.create_record(
            title=form.title,
            record_type=form.recordType,
            record_date=form.recordDate,
            patient_address=form.patientAddress,
            file_path=file_path,
        )
    return jsonify(record.to_json()), 201


@api.route('/records')
@login_required
def list_records():
    """Patients see all their records; doctors see only records covered by an active grant."""
    user = get_current_user()
    storage = get_storage()
    patient_address = required_query_arg('patientAddress', 'Patient')

    if is_patient(user):
        if not same_address(user['address'], patient_address):
            raise Forbidden("You can only view your own records")
        records = storage.list_records_by_patient(patient_address)
    else:
        if not storage.active_grants(user['address'], patient_address):
            raise Forbidden("You don't have access to this patient's records")
        records = storage.records_visible_to_doctor(user['address'], patient_address)

    return jsonify([record.to_json() for record in records])


@api.route('/records/view/<string:record_id>')
@login_required
def view_record(record_id):
    record = load_record(record_id)
    authorize_record(get_current_user(), record, 'view')
    return send_file(record_file_or_404(record))


@api.route('/records/download/<string:record_id>')
@login_required
def download_record(record_id):
    record = load_record(record_id)
    authorize_record(get_current_user(), record, 'download')
    path = record_file_or_404(record)
    extension = file_extension(path)
    download_name = f"{record.title}.{extension}" if extension else record.title
    return send_file(path, as_attachment=True, download_name=download_name)


@api.route('/records/<string:record_id>', methods=['DELETE'])
@login_required
def delete_record(record_id):
    storage = get_storage()
    with storage.transaction():
        record = load_record(record_id)
        authorize_record(get_current_user(), record, 'delete')
        if not storage.delete_record(record.id):
            raise NotFound("Record not found")
    return jsonify({"message": "Record deleted successfully"})


# --- Access Permission Routes ---

@api.route('/access', methods=['POST'])
@login_required
def grant_access():
    """Handles patient granting a doctor access to some of their records."""
    user = get_current_user()
    storage = get_storage()
    if not is_patient(user):
        raise Forbidden("Only patients can grant access")

    payload = validate_payload(GrantAccessRequest, request.get_json(silent=True))
    if not same_address(user['address'], payload.patientAddress):
        raise Forbidden("You can only grant access to your own records")

    with storage.transaction():
        # Check if target is a registered doctor
        doctor = storage.get_user_by_address(payload.doctorAddress)
        if doctor is None or doctor.role != Role.DOCTOR:
            raise InvalidInput("Address provided is not registered as a Doctor")

        grant = storage.grant_access(
            patient_address=payload.patientAddress,
            doctor_address=payload.doctorAddress,
            record_ids=payload.recordIds,
            duration=payload.accessDuration,
        )
    return jsonify(grant.to_api()), 201


@api.route('/access')
@login_required
def list_patient_access():
    """Grants issued by a patient. Doctors only see the ones addressed to them."""
    user = get_current_user()
    patient_address = required_query_arg('patientAddress', 'Patient')
    grants = get_storage().list_grants_by_patient(patient_address)

    if is_patient(user):
        if not same_address(user['address'], patient_address):
            raise Forbidden("You can only view your own access permissions")
    else:
        grants = [grant for grant in grants if same_address(grant.doctor_address, user['address'])]

    return jsonify([grant.to_api() for grant in grants])


@api.route('/access/doctor')
@login_required
def list_doctor_access():
    """The doctor's grants (expired ones flagged) and only the records an active grant still covers."""
    user = get_current_user()
    storage = get_storage()
    doctor_address = required_query_arg('doctorAddress', 'Doctor')
    if not is_doctor(user) or not same_address(user['address'], doctor_address):
        raise Forbidden("You can only view your own accessible records")

    with storage.transaction():
        accessible = storage.accessible_records_for_doctor(doctor_address)
        visible = {
            record.id
            for grant in accessible['grants']
            for record in storage.records_visible_to_doctor(doctor_address, grant.patient_address)
        }
    return jsonify({
        "accessList": [grant.to_api() for grant in accessible['grants']],
        "records": [record.to_json() for record in accessible['records'] if record.id in visible],
    })


@api.route('/access/<string:grant_id>', methods=['DELETE'])
@login_required
def revoke_access(grant_id):
    """Patients revoke their own grants; a doctor may give up a grant addressed to them."""
    user = get_current_user()
    storage = get_storage()
    grant_id = parse_id(grant_id, 'access')
    with storage.transaction():
        grant = storage.get_grant(grant_id)
        if grant is None:
            raise NotFound("Access permission not found")

        owner = grant.patient_address if is_patient(user) else grant.doctor_address
        if not same_address(user['address'], owner):
            raise Forbidden("You can only revoke your own access permissions")

        if not storage.revoke_access(grant.id):
            raise NotFound("Access permission not found")
    return jsonify({"message": "Access revoked successfully"})


# --- Error Handlers ---

def register_error_handlers(app):

    @app.errorhandler(MediChainError)
    def handle_app_error(e):
        if e.status_code >= 500:
            app.logger.error("%s: %s", type(e).__name__, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(e):
        limit = app.config['MAX_CONTENT_LENGTH']
        if limit >= 1024 * 1024:
            readable = f"{limit // (1024 * 1024)}MB"
        else:
            readable = f"{limit // 1024}KB"
        return jsonify({"error": f"File too large (max {readable})"}), 413

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"error": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500


# --- Flask App Initialization ---

def create_app(config_object=Config, storage=None, config_overrides=None):
    """
    Builds the Flask app. The store is created here (from DATA_PATH/DATA_FILE)
    unless one is passed in.
    """
    app = Flask(__name__)
    app.config.from_object(config_object)
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app)

    os.makedirs(app.config['DATA_PATH'], exist_ok=True)
    os.makedirs(app.config['UPLOADS_PATH'], exist_ok=True)

    if storage is None:
        data_file = os.path.join(app.config['DATA_PATH'], app.config['DATA_FILE'])
        storage = Storage(JsonPersistence(data_file), enforce_expiry=app.config['ENFORCE_GRANT_EXPIRY'])
    app.extensions['medichain_storage'] = storage

    app.register_blueprint(api)
    register_error_handlers(app)
    return app


# --- Main Execution ---
if __name__ == '__main__':
    app = create_app()

    # Initial checks on startup
    startup_warnings = []
    if Config.IS_PRODUCTION and Config.SECRET_KEY == 'medichain-secret-key':
        startup_warnings.append("SECRET_KEY is the built-in default; set SECRET_KEY in .env.")
    if not Config.ENFORCE_GRANT_EXPIRY:
        startup_warnings.append("ENFORCE_GRANT_EXPIRY is off: expired grants still authorize access.")

    for warning in startup_warnings:
        app.logger.warning(warning)

    app.run(host='0.0.0.0', port=Config.PORT, debug=not Config.IS_PRODUCTION)
