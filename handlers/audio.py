import logging
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, Response, UploadFile, status
from fastapi.responses import StreamingResponse
import gemini
from config import MAX_UPLOAD_BYTES, PAGE_SIZE
from deps import get_audio_store, get_current_user, get_journal, get_search_cache
from journal import create_entry, normalize_query, parse_tags
from storage import verify_file_link

router = APIRouter(prefix="/api/audio", tags=["audio"])

logger = logging.getLogger(__name__)

QUERY_REQUIRED = 'Query parameter "q" is required and must be a non-empty string.'


@router.get("")
async def list_entries(page: int = 1, user_id: str = Depends(get_current_user), journal=Depends(get_journal)):
    page = max(page, 1)
    try:
        entries, total = await journal.list_entries(user_id, page, PAGE_SIZE)
    except Exception as e:
        logger.error(f"Error listing entries for {user_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error fetching audio entries.")

    return {
        "entries": entries,
        "total_pages": (total + PAGE_SIZE - 1) // PAGE_SIZE,
        "current_page": page
    }


@router.get("/search")
async def search_entries(
    response: Response,
    q: str = None,
    user_id: str = Depends(get_current_user),
    journal=Depends(get_journal),
    cache=Depends(get_search_cache),
):
    query = normalize_query(q or "")
    if not query:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=QUERY_REQUIRED)

    cached = cache.lookup(user_id, query)
    if cached is not None:
        response.headers["X-Cache"] = "HIT"
        return cached

    try:
        results = await journal.search_entries(user_id, query)
    except Exception as e:
        logger.error(f"Error searching audio entries for {user_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error searching audio entries.")

    cache.store(user_id, query, results)
    response.headers["X-Cache"] = "MISS"
    return results


@router.post("/upload")
async def upload_entry(
    audioFile: UploadFile = File(None),
    audio: UploadFile = File(None),
    title: str = Form(""),
    tags: str = Form(""),
    user_id: str = Depends(get_current_user),
    journal=Depends(get_journal),
    audio_store=Depends(get_audio_store),
    cache=Depends(get_search_cache),
):
    upload = audioFile or audio
    if upload is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No files were uploaded.")

    content_type = (upload.content_type or "").split(";")[0].strip().lower()
    if not content_type.startswith("audio/"):
        raise HTTPException(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, detail="Only audio files are accepted.")

    data = await upload.read(MAX_UPLOAD_BYTES + 1)
    await upload.close()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No files were uploaded.")
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="Audio file is too large.")

    cache.invalidate_user(user_id)
    try:
        entry = await create_entry(
            journal, audio_store, user_id, data,
            upload.filename, content_type,
            title=title.strip()[:200], tags=parse_tags(tags),
        )
    except Exception as e:
        logger.error(f"Error uploading audio for {user_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error uploading audio.")
    finally:
        cache.invalidate_user(user_id)

    return {"message": "Upload successful", "entry": entry}


@router.get("/files/{file_id}")
async def download_audio(file_id: str, expires: str = None, signature: str = None, audio_store=Depends(get_audio_store)):
    if not verify_file_link(file_id, expires, signature):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired link.")

    grid_out = await audio_store.open(file_id)
    if grid_out is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Audio not found.")

    metadata = grid_out.metadata or {}

    async def stream():
        try:
            while True:
                chunk = await grid_out.readchunk()
                if not chunk:
                    break
                yield chunk
        finally:
            await grid_out.close()

    return StreamingResponse(
        stream(),
        media_type=metadata.get("contentType", "application/octet-stream"),
        headers={"Content-Length": str(grid_out.length), "Cache-Control": "private, max-age=3600"},
    )


@router.get("/{entry_id}")
async def get_entry(entry_id: str, user_id: str = Depends(get_current_user), journal=Depends(get_journal)):
    entry = await journal.get_entry(user_id, entry_id)
    if not entry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found.")
    return entry


@router.patch("/{entry_id}")
async def update_entry(
    entry_id: str,
    request: Request,
    user_id: str = Depends(get_current_user),
    journal=Depends(get_journal),
    cache=Depends(get_search_cache),
):
    try:
        data = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body.")
    if not isinstance(data, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body.")

    title = data.get("title")
    tags = data.get("tags")
    if title is None and tags is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Nothing to update.")
    if title is not None:
        title = str(title).strip()[:200]
        if not title:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Title cannot be empty.")
    if tags is not None:
        tags = parse_tags(tags)

    cache.invalidate_user(user_id)
    try:
        entry = await journal.update_entry(user_id, entry_id, title=title, tags=tags)
    finally:
        cache.invalidate_user(user_id)
    if not entry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found.")
    return entry


@router.delete("/{entry_id}")
async def delete_entry(
    entry_id: str,
    user_id: str = Depends(get_current_user),
    journal=Depends(get_journal),
    audio_store=Depends(get_audio_store),
    cache=Depends(get_search_cache),
):
    cache.invalidate_user(user_id)
    try:
        entry = await journal.delete_entry(user_id, entry_id)
    finally:
        cache.invalidate_user(user_id)
    if not entry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found.")

    file_id = entry.get("audioFileId")
    if file_id:
        try:
            await audio_store.delete(file_id)
        except Exception as e:
            # The entry is gone either way; an orphaned blob is tolerated
            logger.error(f"Entry {entry_id} deleted but audio {file_id} was not: {e}")

    return {"message": "Entry deleted successfully", "entryId": entry_id}


@router.post("/{entry_id}/chat")
async def chat_about_entry(
    entry_id: str,
    request: Request,
    user_id: str = Depends(get_current_user),
    journal=Depends(get_journal),
):
    try:
        data = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body.")
    if not isinstance(data, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body.")

    message = str(data.get("message") or "").strip()
    if not message:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message cannot be empty.")
    history = data.get("history") or []
    if not isinstance(history, list):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="History must be a list.")

    entry = await journal.get_entry(user_id, entry_id)
    if not entry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found.")

    context = f"Transcription: {entry['transcription']}\nYour first reflection: {entry['aiResponse']}"
    try:
        reply = await gemini.chat_with_therapist(history, message, context=context)
    except gemini.GeminiError as e:
        logger.error(f"Chat failed for entry {entry_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to get chat response.")

    return {"response": reply}
