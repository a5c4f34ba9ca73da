"""
Upload Blueprint — direct video uploads to Kinescope.

  POST /api/v1/upload            { project_id, file_name, file_type, file_size }
  POST /api/v1/upload/confirm    { project_id, kinescope_video_id }

The browser sends the file straight to the returned upload URL; this API
only brokers the session and later reads back the processing state.
"""

from flask import Blueprint, g, jsonify

from app.middleware.jwt_auth import login_required
from app.schemas import UploadConfirm, UploadCreate, load
from app.services import kinescope_service
from app.services.access_control import assert_project_access
from app.utils.helpers import db_commit_or_error

upload_bp = Blueprint("upload_bp", __name__, url_prefix="/api/v1/upload")


@upload_bp.route("", methods=["POST"])
@login_required
def create_upload():
    payload = load(UploadCreate)
    assert_project_access(g.current_user, payload.project_id)
    session = kinescope_service.create_upload_session(tenant_id=g.tenant.id, **payload.data())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(session), 201


@upload_bp.route("/confirm", methods=["POST"])
@login_required
def confirm_upload():
    payload = load(UploadConfirm)
    assert_project_access(g.current_user, payload.project_id)
    result = kinescope_service.confirm_upload(
        tenant_id=g.tenant.id,
        project_id=payload.project_id,
        kinescope_video_id=payload.kinescope_video_id,
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result), 200
