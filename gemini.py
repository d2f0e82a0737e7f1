import base64
import asyncio
import logging
import aiohttp
from config import GEMINI_API_KEY, GEMINI_MODEL, GEMINI_TIMEOUT

logger = logging.getLogger(__name__)

API_BASE_URL = 'https://generativelanguage.googleapis.com/v1beta/models'

TRANSCRIBE_PROMPT = "Transcribe what's said in this audio recording."

THERAPIST_PROMPT = (
    "You are a warm, thoughtful therapist reading a client's spoken journal entry. "
    "Reflect back the feelings you notice, gently point out patterns, and offer one "
    "or two open questions or small suggestions. Keep it under 200 words. "
    "Do not diagnose, and encourage professional help if the entry mentions self-harm."
)

FALLBACK_RESPONSE = "I'm sorry, I'm having trouble processing your entry right now."


class GeminiError(Exception):
    """The generative AI provider failed or returned nothing usable."""


def extract_text(payload):
    """
    Pull the generated text out of a generateContent response.
    Returns "" when the model produced no text (blocked or empty).
    """
    candidates = payload.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return ""
    content = candidates[0].get("content")
    parts = (content.get("parts") or []) if isinstance(content, dict) else []
    return "".join(str(part.get("text") or "") for part in parts if isinstance(part, dict)).strip()


def build_chat_contents(history, message):
    """
    Convert chat history into Gemini `contents`.
    Accepts items shaped {role, text} or {role, parts: [{text}]}.
    """
    contents = []
    for item in history or []:
        if not isinstance(item, dict):
            continue
        role = "user" if item.get("role") == "user" else "model"
        if item.get("parts"):
            parts = [{"text": p.get("text", "")} for p in item["parts"] if isinstance(p, dict)]
        else:
            parts = [{"text": item.get("text", "")}]
        parts = [p for p in parts if p["text"]]
        if parts:
            contents.append({"role": role, "parts": parts})
    # The API rejects conversations that open with a model turn
    while contents and contents[0]["role"] == "model":
        contents.pop(0)
    contents.append({"role": "user", "parts": [{"text": message}]})
    return contents


def error_message(data, default=""):
    """Read `error.message` from a provider error body of any shape."""
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return error.get("message") or default
    if isinstance(error, str):
        return error
    return default


async def _generate(contents, system_instruction=None):
    if not GEMINI_API_KEY:
        raise GeminiError("GEMINI_API_KEY is not configured")

    url = f"{API_BASE_URL}/{GEMINI_MODEL}:generateContent"
    body = {"contents": contents}
    if system_instruction:
        body["systemInstruction"] = {"parts": [{"text": system_instruction}]}

    timeout = aiohttp.ClientTimeout(total=GEMINI_TIMEOUT)
    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(url, json=body, headers={"x-goog-api-key": GEMINI_API_KEY}) as resp:
                data = await resp.json(content_type=None)
                if resp.status != 200:
                    message = error_message(data)
                    raise GeminiError(f"Gemini returned {resp.status}: {message}")
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        raise GeminiError(f"Gemini request failed: {e}") from e

    text = extract_text(data) if isinstance(data, dict) else ""
    if not text:
        raise GeminiError("Gemini returned no text")
    return text


async def transcribe_audio(data, mime_type):
    """Transcribe raw audio bytes. Raises GeminiError on failure."""
    logger.info(f"Transcribing {len(data)} bytes of {mime_type}")
    contents = [{
        "role": "user",
        "parts": [
            {"text": TRANSCRIBE_PROMPT},
            {"inline_data": {"mime_type": mime_type, "data": base64.b64encode(data).decode()}},
        ],
    }]
    text = await _generate(contents)
    logger.info("Transcription complete.")
    return text


async def get_therapist_response(transcription):
    """Reflect on a transcription. Falls back to FALLBACK_RESPONSE on any failure."""
    try:
        return await _generate(
            [{"role": "user", "parts": [{"text": transcription}]}],
            system_instruction=THERAPIST_PROMPT,
        )
    except Exception as e:
        logger.error(f"Therapist response failed: {e}")
        return FALLBACK_RESPONSE


async def chat_with_therapist(history, message, context=None):
    """
    Continue a conversation about a journal entry.
    `context` is the entry's transcription and first response, if known.
    """
    system_instruction = THERAPIST_PROMPT
    if context:
        system_instruction += f"\n\nThe conversation is about this journal entry:\n{context}"
    try:
        return await _generate(build_chat_contents(history, message), system_instruction=system_instruction)
    except GeminiError as e:
        logger.error(f"Therapist chat failed: {e}")
        raise GeminiError("Failed to get chat response.") from e
