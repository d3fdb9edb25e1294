"""Multipart upload helpers shared by the gallery, session and compare routes."""
from typing import List, Optional, Sequence, Tuple

from fastapi import HTTPException, UploadFile

from poseview.imaging import looks_like_image

UploadedFile = Tuple[bytes, str, Optional[str]]


async def read_image_upload(file: UploadFile) -> UploadedFile:
	"""Read one upload; 400 if it is not an image or is empty."""
	if not looks_like_image(file.content_type, file.filename):
		raise HTTPException(status_code=400, detail=f"not an image: {file.filename or '(unnamed)'}")
	data = await file.read()
	if not data:
		raise HTTPException(status_code=400, detail=f"empty file: {file.filename or '(unnamed)'}")
	return data, file.filename or "", file.content_type


async def read_image_uploads(files: Sequence[UploadFile]) -> Tuple[List[UploadedFile], List[str]]:
	"""Read all image uploads, skipping the rest. Returns (images, skipped names)."""
	images: List[UploadedFile] = []
	skipped: List[str] = []
	for f in files:
		if not looks_like_image(f.content_type, f.filename):
			skipped.append(f.filename or "")
			continue
		data = await f.read()
		if not data:
			skipped.append(f.filename or "")
			continue
		images.append((data, f.filename or "", f.content_type))
	return images, skipped
