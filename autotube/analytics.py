"""YouTube statistics + performance scoring for published entries."""

from .config import iso_utc, utc_now
from .log import get_logger
from .models import PublishEntry
from .retry import with_retry

GRADES = [(90, "A+"), (80, "A"), (70, "B"), (60, "C"), (50, "D")]


@with_retry(max_retries=2, base_delay=2.0)
def fetch_video_stats(video_ids: list[str], youtube=None) -> dict[str, dict]:
    """views/likes/comments per video id (videos.list, 50 ids per call)."""
    if not video_ids:
        return {}
    if youtube is None:
        from .upload import get_youtube_service
        youtube = get_youtube_service()

    stats = {}
    for start in range(0, len(video_ids), 50):
        batch = video_ids[start:start + 50]
        response = youtube.videos().list(part="statistics", id=",".join(batch)).execute()
        for item in response.get("items", []):
            s = item.get("statistics", {})
            stats[item["id"]] = {
                "views": int(s.get("viewCount", 0)),
                "likes": int(s.get("likeCount", 0)),
                "comments": int(s.get("commentCount", 0)),
            }
    return stats


def engagement_rate(views: int, likes: int, comments: int) -> float:
    """(likes + comments) per 100 views."""
    if views <= 0:
        return 0.0
    return (likes + comments) / views * 100


def performance_grade(score: int) -> str:
    for threshold, grade in GRADES:
        if score >= threshold:
            return grade
    return "F"


def performance_score(views: int, likes: int, comments: int) -> dict:
    """Views (30 pts, full at 10k) + engagement (25 pts, full at 5%), scaled to 0-100."""
    views_score = min(30.0, views / 10_000 * 30)
    engagement_score = min(25.0, engagement_rate(views, likes, comments) * 5)
    score = round((views_score + engagement_score) / 55 * 100)
    return {
        "score": score,
        "breakdown": {"views": round(views_score), "engagement": round(engagement_score)},
        "grade": performance_grade(score),
    }


def analyze_entries(entries: list[PublishEntry], youtube=None) -> list[dict]:
    """One analytics report per published entry that YouTube returned stats for."""
    ids = [e.external_id for e in entries if e.external_id]
    stats = fetch_video_stats(ids, youtube=youtube)
    now = iso_utc(utc_now())

    reports = []
    for entry in entries:
        s = stats.get(entry.external_id or "")
        if s is None:
            get_logger().debug("No statistics for %s", entry.id)
            continue
        perf = performance_score(s["views"], s["likes"], s["comments"])
        reports.append({
            "entry_id": entry.id,
            "external_id": entry.external_id,
            "title": entry.title,
            **s,
            "engagement_rate": round(engagement_rate(s["views"], s["likes"], s["comments"]), 2),
            "performance_score": perf["score"],
            "grade": perf["grade"],
            "analyzed_at": now,
        })
    return reports


def insights(reports: list[dict]) -> list[dict]:
    """Plain-language observations for the weekly review."""
    if not reports:
        return [{"type": "info", "message": "No published videos to analyse yet"}]

    found = []
    avg_score = sum(r["performance_score"] for r in reports) / len(reports)
    avg_engagement = sum(r.get("engagement_rate", 0) for r in reports) / len(reports)
    if avg_score >= 70:
        found.append({"type": "success", "message": f"Strong average performance ({avg_score:.0f}/100)"})
    elif avg_score < 50:
        found.append({"type": "warning", "message": f"Weak average performance ({avg_score:.0f}/100)"})
    if avg_engagement < 2:
        found.append({
            "type": "warning",
            "message": "Low audience engagement",
            "recommendation": "Encourage more interaction in future videos",
        })
    best = max(reports, key=lambda r: r["performance_score"])
    found.append({"type": "info", "message": f"Top performer: {best['title']} ({best['grade']})"})
    return found
