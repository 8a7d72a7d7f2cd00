"""
Processed image routes.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse

from optiqueue.api.dependencies import get_optimizer
from optiqueue.constants import API_V1_PREFIX
from optiqueue.worker.optimizer import MEDIA_TYPES, ImageOptimizer

router = APIRouter(prefix=API_V1_PREFIX, tags=["Images"])


@router.get(
    "/images/{filename}",
    summary="Download a processed image",
    response_class=FileResponse,
)
async def get_image(
    filename: str,
    optimizer: ImageOptimizer = Depends(get_optimizer),
) -> FileResponse:
    """
    Serve an optimized image.

    Raises:
        HTTPException: 400 for unsafe names, 404 if the file does not exist.
    """
    if not optimizer.is_safe_filename(filename):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid filename",
        )

    path = optimizer.resolve_output(filename)
    if path is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Image not found",
        )

    return FileResponse(
        path,
        media_type=MEDIA_TYPES.get(path.suffix.lower(), "application/octet-stream"),
        headers={"Cache-Control": "public, max-age=86400"},
    )
