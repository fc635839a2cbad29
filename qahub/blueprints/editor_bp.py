"""
Editor Blueprint: images pasted into rich-text fields.

  POST    /api/v1/editor/images            multipart field ``image``
  GET     /api/v1/editor/images
  GET     /api/v1/editor/images/<id>
  GET     /api/v1/editor/images/<id>/file  raw bytes
  DELETE  /api/v1/editor/images/<id>
"""

from flask import Blueprint, Response, request

from qahub.blueprints import current_user_id, data_response, list_response
from qahub.services import editor_image_service

editor_bp = Blueprint("editor_bp", __name__, url_prefix="/api/v1/editor/images")


@editor_bp.route("", methods=["POST"])
def upload_image():
    image = editor_image_service.upload_image(
        user_id=current_user_id(), file_storage=request.files.get("image"),
    )
    return data_response(image.to_dict(), 201)


@editor_bp.route("", methods=["GET"])
def list_images():
    return list_response(editor_image_service.list_query(user_id=current_user_id()))


@editor_bp.route("/<int:image_id>", methods=["GET"])
def get_image(image_id):
    return data_response(editor_image_service.get_image(user_id=current_user_id(), image_id=image_id).to_dict())


@editor_bp.route("/<int:image_id>/file", methods=["GET"])
def image_file(image_id):
    image = editor_image_service.get_image(user_id=current_user_id(), image_id=image_id)
    return Response(
        editor_image_service.read_bytes(image),
        mimetype=image.mime_type,
        headers={
            "Content-Disposition": f"inline; filename={image.filename}",
            "Cache-Control": "private, max-age=86400",
        },
    )


@editor_bp.route("/<int:image_id>", methods=["DELETE"])
def delete_image(image_id):
    editor_image_service.delete_image(user_id=current_user_id(), image_id=image_id)
    return data_response({"message": "Image deleted"})
