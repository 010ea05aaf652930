"""YouTube API upload + thumbnail + captions."""

from pathlib import Path

from .config import get_youtube_token_path, parse_iso, utc_now, write_secret_file
from .errors import PublishError
from .log import get_logger, log
from .models import ProductionItem, PublishEntry, SEO
from .retry import with_retry


def get_youtube_service():
    """Authorised YouTube Data API v3 client; refreshes the stored token if expired."""
    from google.oauth2.credentials import Credentials
    from google.auth.transport.requests import Request
    from googleapiclient.discovery import build

    token_path = get_youtube_token_path()
    creds = Credentials.from_authorized_user_file(str(token_path))
    if creds.expired and creds.refresh_token:
        creds.refresh(Request())
        write_secret_file(token_path, creds.to_json())
    return build("youtube", "v3", credentials=creds)


def build_video_body(seo: SEO, privacy: str = "private", publish_at: str | None = None) -> dict:
    """videos.insert request body. publishAt only applies to private uploads."""
    body = {
        "snippet": {
            "title": seo.title[:100],
            "description": seo.description[:5000],
            "tags": seo.tags,
            "categoryId": seo.category_id,
            "defaultLanguage": seo.language,
            "defaultAudioLanguage": seo.language,
        },
        "status": {"privacyStatus": privacy, "selfDeclaredMadeForKids": False},
    }
    if publish_at and parse_iso(publish_at) > utc_now():
        body["status"]["privacyStatus"] = "private"
        body["status"]["publishAt"] = publish_at
    return body


@with_retry(max_retries=2, base_delay=5.0)
def upload_to_youtube(
    video_path: Path,
    seo: SEO,
    privacy: str = "private",
    publish_at: str | None = None,
    srt_path: Path = None,
    thumbnail_path: Path = None,
    youtube=None,
) -> dict:
    """Upload video with metadata, then captions and thumbnail if available."""
    from googleapiclient.http import MediaFileUpload

    youtube = youtube or get_youtube_service()
    log(f"Uploading {video_path.name}...")

    media = MediaFileUpload(str(video_path), chunksize=-1, resumable=True)
    req = youtube.videos().insert(
        part="snippet,status",
        body=build_video_body(seo, privacy, publish_at),
        media_body=media,
    )
    response = None
    while response is None:
        status, response = req.next_chunk()
        if status:
            log(f"Upload progress: {int(status.progress() * 100)}%")

    video_id = response["id"]
    url = f"https://youtu.be/{video_id}"
    log(f"Uploaded: {url}")

    # Captions and thumbnail are best-effort; the video is already live
    if srt_path and srt_path.exists():
        try:
            youtube.captions().insert(
                part="snippet",
                body={
                    "snippet": {
                        "videoId": video_id,
                        "language": seo.language,
                        "name": seo.language.upper(),
                        "isDraft": False,
                    }
                },
                media_body=MediaFileUpload(str(srt_path), mimetype="application/octet-stream"),
            ).execute()
            log("Captions uploaded.")
        except Exception as e:
            get_logger().warning("Caption upload failed: %s", e)

    if thumbnail_path and thumbnail_path.exists():
        try:
            youtube.thumbnails().set(
                videoId=video_id,
                media_body=MediaFileUpload(str(thumbnail_path), mimetype="image/png"),
            ).execute()
            log("Thumbnail uploaded.")
        except Exception as e:
            get_logger().warning("Thumbnail upload failed: %s", e)

    return {"external_id": video_id, "url": url}


def _real_path(item: ProductionItem, stage: str) -> Path | None:
    artifact = item.artifacts.get(stage)
    if artifact is None or artifact.simulated or not artifact.path:
        return None
    return Path(artifact.path)


def publish_production(item: ProductionItem, entry: PublishEntry, privacy: str = "private") -> dict:
    """Publishing transport for the queue: returns {external_id, url} or raises."""
    video_path = _real_path(item, "video")
    if video_path is None:
        raise PublishError(f"{item.id} has no real video to upload (simulated)")
    if not video_path.exists():
        raise PublishError(f"video file missing: {video_path}")

    try:
        return upload_to_youtube(
            video_path,
            item.brief.seo,
            privacy=privacy,
            publish_at=entry.publish_time,
            srt_path=_real_path(item, "captions"),
            thumbnail_path=_real_path(item, "thumbnail"),
        )
    except PublishError:
        raise
    except Exception as e:
        raise PublishError(f"YouTube upload failed: {e}") from e
