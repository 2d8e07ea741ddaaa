from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
import logging

from ..dependencies import Services, get_services
from ..exceptions import create_success_response, BulkDeletionFailure
from ..application.services import FamilyView, DerivationResult
from ..schemas.images.image import (
    ImageResponse,
    FamilyResponse,
    ResolutionResponse,
    DerivationResponse,
    VariantFailureResponse,
    DeriveVariantsRequest,
    BulkIdsRequest,
    BulkDeleteResponse,
    BulkTagRequest,
    BulkMoveRequest,
    ImageUpdateRequest,
    AttachRequest,
    ActivityResponse,
    LibraryStatsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/images", tags=["Images"])


def _image(image) -> dict:
    return ImageResponse.model_validate(image).model_dump(mode="json")

def _family(family: FamilyView) -> dict:
    resolution = family.resolution
    body = FamilyResponse(
        original=ImageResponse.model_validate(family.original),
        variants=[ImageResponse.model_validate(v) for v in family.variants],
        all=[ImageResponse.model_validate(m) for m in family.all],
        resolution=ResolutionResponse(
            status="fallback_self" if family.is_fallback else "resolved",
            reason=getattr(resolution, "reason", None),
            parsed_original_id=getattr(resolution, "parsed_original_id", None),
        ),
    )
    return body.model_dump(mode="json")

def _derivation(result: DerivationResult) -> dict:
    body = DerivationResponse(
        original_id=result.original.id,
        requested_types=result.requested_types,
        generated=[ImageResponse.model_validate(v) for v in result.generated],
        generated_count=result.generated_count,
        created_types=result.created_types,
        reused_types=result.reused_types,
        skipped_types=result.skipped_types,
        failures=[
            VariantFailureResponse(variant_type=f.variant_type, error=type(f.error).__name__, message=f.message)
            for f in result.failures
        ],
    )
    return body.model_dump(mode="json")


@router.post("")
def upload_image(
    file: UploadFile = File(...),
    folder: Optional[str] = Form(None),
    tags: Optional[str] = Form(None, description="Comma-separated tags"),
    title: Optional[str] = Form(None),
    alt_text: Optional[str] = Form(None),
    services: Services = Depends(get_services),
):
    data = file.file.read()
    tag_list = [t for t in (tags or "").split(",") if t.strip()]
    image = services.images.upload_original(
        data,
        original_filename=file.filename or "upload.jpg",
        content_type=file.content_type or "image/jpeg",
        folder=folder,
        tags=tag_list,
        title=title,
        alt_text=alt_text,
    )
    return create_success_response(_image(image))

@router.get("")
def list_images(
    folder: Optional[str] = Query(None),
    tag: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    services: Services = Depends(get_services),
):
    images = services.images.list_originals(folder=folder, tag=tag, search=search)
    items = []
    for image in images:
        item = _image(image)
        item["variant_count"] = services.family_index.variant_count(image.id)
        items.append(item)
    return create_success_response(items)

@router.get("/stats")
def library_stats(services: Services = Depends(get_services)):
    return create_success_response(LibraryStatsResponse(**services.images.stats()).model_dump())

@router.get("/folders")
def list_folders(services: Services = Depends(get_services)):
    return create_success_response(services.images.list_folders())

@router.get("/tags")
def list_tags(services: Services = Depends(get_services)):
    return create_success_response(services.images.list_tags())

@router.post("/bulk-delete")
def bulk_delete_images(request: BulkIdsRequest, services: Services = Depends(get_services)):
    result = services.deletion.bulk_delete_images(request.ids)
    if not result.success:
        raise BulkDeletionFailure(result.errors)
    return create_success_response(BulkDeleteResponse(
        success=result.success,
        deleted_count=result.deleted_count,
        deleted_items=result.deleted_items,
        errors=result.errors,
    ).model_dump())

@router.post("/bulk-tag")
def bulk_tag_images(request: BulkTagRequest, services: Services = Depends(get_services)):
    return create_success_response(services.images.bulk_tag(request.ids, request.tags, request.operation))

@router.post("/bulk-move")
def bulk_move_images(request: BulkMoveRequest, services: Services = Depends(get_services)):
    return create_success_response(services.images.bulk_move(request.ids, request.folder))

@router.get("/{image_id}")
def get_image(image_id: int, services: Services = Depends(get_services)):
    return create_success_response(_image(services.image_repo.find(image_id)))

@router.patch("/{image_id}")
def update_image(image_id: int, request: ImageUpdateRequest, services: Services = Depends(get_services)):
    fields = request.model_dump(exclude_unset=True)
    image = services.images.update_image(image_id, **fields)
    return create_success_response(_image(image))

@router.delete("/{image_id}")
def delete_image(image_id: int, services: Services = Depends(get_services)):
    return create_success_response(services.deletion.delete_image(image_id))

@router.post("/{image_id}/variants")
def derive_variants(image_id: int, request: Optional[DeriveVariantsRequest] = None, services: Services = Depends(get_services)):
    types = request.types if request else None
    result = services.variants.derive_variants(image_id, types)
    return create_success_response(_derivation(result))

@router.get("/{image_id}/variants")
def list_variants(image_id: int, services: Services = Depends(get_services)):
    original = services.image_repo.find(image_id)
    return create_success_response([_image(v) for v in services.family_index.list_variants(original.id)])

@router.delete("/{image_id}/variants")
def delete_variants(image_id: int, services: Services = Depends(get_services)):
    deleted = services.deletion.delete_variants(image_id)
    return create_success_response({"deleted_count": len(deleted), "deleted_items": deleted})

@router.get("/{image_id}/family")
def get_family(image_id: int, services: Services = Depends(get_services)):
    return create_success_response(_family(services.family_index.get_family_by_id(image_id)))

@router.delete("/{image_id}/family")
def delete_family(image_id: int, services: Services = Depends(get_services)):
    deleted = services.deletion.delete_family(image_id)
    return create_success_response({"deleted_count": len(deleted), "deleted_items": deleted})

@router.get("/{image_id}/activity")
def family_activity(image_id: int, services: Services = Depends(get_services)):
    records = services.activity.activity_for_family(image_id)
    return create_success_response([ActivityResponse.model_validate(r).model_dump(mode="json") for r in records])

@router.post("/{image_id}/reprocess")
def reprocess_image(image_id: int, generate_variants: bool = Query(True), services: Services = Depends(get_services)):
    out = services.images.reprocess(image_id, generate_variants=generate_variants)
    derivation = out["derivation"]
    return create_success_response({
        "image": _image(out["image"]),
        "derivation": _derivation(derivation) if derivation else None,
    })

@router.post("/{image_id}/attachments")
def attach_image(image_id: int, request: AttachRequest, services: Services = Depends(get_services)):
    services.images.attach(image_id, request.attachable_type, request.attachable_id, is_primary=request.is_primary)
    return create_success_response({"image_id": image_id, "attachable_type": request.attachable_type, "attachable_id": request.attachable_id})

@router.delete("/{image_id}/attachments/{attachable_type}/{attachable_id}")
def detach_image(image_id: int, attachable_type: str, attachable_id: int, services: Services = Depends(get_services)):
    count = services.images.detach(image_id, attachable_type, attachable_id)
    return create_success_response({"detached": count})
