import logging
from html import escape
from typing import List, Optional, Tuple

from telegram import Update
from telegram.constants import ParseMode
from telegram.ext import ContextTypes

from errors import BookmarkNotFoundError, MaintenanceError, MalformedURLError, MergeError, RepositoryError
from models import DuplicateGroup, HealthRecord, HealthStatus

logger = logging.getLogger(__name__)

MAX_GROUPS_SHOWN = 10
MAX_BROKEN_SHOWN = 20

STATUS_ICONS = {
    HealthStatus.HEALTHY: "✅",
    HealthStatus.SLOW: "🐢",
    HealthStatus.REDIRECT: "↪️",
    HealthStatus.BROKEN: "❌",
    HealthStatus.UNKNOWN: "❔",
}


def _service(context: ContextTypes.DEFAULT_TYPE):
    return context.bot_data["maintenance"]


def _parse_id(raw: str) -> Optional[int]:
    raw = (raw or "").strip().lstrip("#")
    if not raw.isdigit() or int(raw) <= 0:
        return None
    return int(raw)


def _is_admin(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    admin_ids = context.bot_data.get("admin_ids") or []
    if not admin_ids:
        return True
    user = update.effective_user
    return bool(user) and user.id in admin_ids


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    help_text = (
        "<b>Bookmark maintenance</b>\n\n"
        "<b>Health</b>\n"
        "• /health_stats — Link health overview\n"
        "• /health &lt;id&gt; — Latest check for a bookmark\n"
        "• /check &lt;id&gt; — Check a bookmark right now\n"
        "• /broken — Bookmarks whose links are broken\n"
        "• /sweep — Start a full health sweep\n\n"
        "<b>Duplicates</b>\n"
        "• /duplicates — Scan all bookmarks for duplicates\n"
        "• /dupcheck &lt;url&gt; [title] — Check a link before saving it\n"
        "• /analyze &lt;url&gt; — Show how a URL is normalized\n"
        "• /merge &lt;primary&gt; &lt;duplicate&gt;... [--no-tags] [--no-metadata]\n"
    )
    await update.message.reply_text(help_text, parse_mode=ParseMode.HTML)


async def health_stats_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    stats = await _service(context).get_health_stats()

    message = (
        "<b>🩺 Link health</b>\n"
        f"• Total bookmarks: <b>{stats['total']}</b>\n"
        f"• Healthy: {stats['healthy']}\n"
        f"• Slow: {stats['slow']}\n"
        f"• Redirect: {stats['redirect']}\n"
        f"• Broken: {stats['broken']}\n"
        f"• Unknown: {stats['unknown']}\n"
        f"• Not checked yet: {stats['unchecked']}"
    )
    await update.message.reply_text(message, parse_mode=ParseMode.HTML)


async def health_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    bookmark_id = _parse_id(" ".join(context.args or []))
    if bookmark_id is None:
        await update.message.reply_text("Please provide a bookmark id, e.g. <code>/health 42</code>", parse_mode=ParseMode.HTML)
        return

    record = _service(context).get_health(bookmark_id)
    if record is None:
        await update.message.reply_text(f"Bookmark {bookmark_id} has not been checked yet. Try /check {bookmark_id}.")
        return

    await update.message.reply_text(_render_health(record), parse_mode=ParseMode.HTML, disable_web_page_preview=True)


async def check_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    bookmark_id = _parse_id(" ".join(context.args or []))
    if bookmark_id is None:
        await update.message.reply_text("Please provide a bookmark id, e.g. <code>/check 42</code>", parse_mode=ParseMode.HTML)
        return

    record = await _service(context).check_bookmark_now(bookmark_id)
    await update.message.reply_text(_render_health(record), parse_mode=ParseMode.HTML, disable_web_page_preview=True)


async def broken_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    broken = _service(context).get_broken_health()
    if not broken:
        await update.message.reply_text("No broken links found in the last sweep. 🎉")
        return

    broken.sort(key=lambda record: record.bookmark_id)
    header = f"<b>Broken links ({len(broken)})</b>"
    body = "\n\n".join(_render_health(record) for record in broken[:MAX_BROKEN_SHOWN])
    await update.message.reply_text(f"{header}\n\n{body}", parse_mode=ParseMode.HTML, disable_web_page_preview=True)


async def sweep_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    service = _service(context)
    if service.sweep_in_progress:
        await update.message.reply_text("A health sweep is already running.")
        return

    service.trigger_health_sweep()
    await update.message.reply_text("Health sweep started. Use /health_stats to follow progress.")


async def duplicates_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.message.reply_text("Scanning your bookmarks for duplicates…")
    try:
        groups = await _service(context).find_all_duplicates()
    except RepositoryError:
        logger.exception("Duplicate scan failed")
        await update.message.reply_text("I couldn't read your bookmarks right now. Please try again later.")
        return

    if not groups:
        await update.message.reply_text("No duplicates found.")
        return

    header = f"<b>Found {len(groups)} duplicate group(s)</b>"
    body = "\n\n".join(_render_group(group) for group in groups[:MAX_GROUPS_SHOWN])
    footer = ""
    if len(groups) > MAX_GROUPS_SHOWN:
        footer = f"\n\n<i>…and {len(groups) - MAX_GROUPS_SHOWN} more.</i>"
    await update.message.reply_text(f"{header}\n\n{body}{footer}", parse_mode=ParseMode.HTML, disable_web_page_preview=True)


async def dupcheck_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    args = list(context.args or [])
    if not args:
        await update.message.reply_text("Please provide a URL, e.g. <code>/dupcheck https://example.com My title</code>", parse_mode=ParseMode.HTML)
        return

    url, title = args[0], " ".join(args[1:])
    try:
        result = await _service(context).check_for_duplicates(url, title)
    except MalformedURLError as exc:
        await update.message.reply_text(f"That doesn't look like a valid URL: {exc.reason}")
        return
    except RepositoryError:
        logger.exception("Duplicate check failed for %s", url)
        await update.message.reply_text("I couldn't read your bookmarks right now. Please try again later.")
        return

    if result.has_exact_duplicate:
        lines = [f"⚠️ <b>Already saved</b> as #{result.exact_duplicate.id}"]
    elif result.has_similar_bookmarks:
        lines = [f"🔍 <b>Possible duplicates</b> (confidence {result.confidence:.0%})"]
        lines.extend(
            f"• #{bookmark.id} <a href=\"{escape(bookmark.url)}\">{escape(bookmark.title or bookmark.url)}</a>"
            for bookmark in result.similar_bookmarks
        )
    else:
        lines = ["✅ No duplicates found."]

    lines.extend(f"<i>{escape(note)}</i>" for note in result.recommendations if not note.startswith("Similar:"))
    await update.message.reply_text("\n".join(lines), parse_mode=ParseMode.HTML, disable_web_page_preview=True)


async def analyze_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    url = " ".join(context.args or []).strip()
    if not url:
        await update.message.reply_text("Please provide a URL, e.g. <code>/analyze https://bit.ly/abc</code>", parse_mode=ParseMode.HTML)
        return

    try:
        analysis = await _service(context).analyze_url(url)
    except MalformedURLError as exc:
        await update.message.reply_text(f"That doesn't look like a valid URL: {exc.reason}")
        return

    parts = [
        f"<b>Normalized:</b> <code>{escape(analysis.normalized)}</code>",
        f"<b>Short URL:</b> {'yes' if analysis.is_short_url else 'no'}",
    ]
    if analysis.expanded_url:
        parts.append(f"<b>Expands to:</b> <code>{escape(analysis.expanded_url)}</code>")
    parts.append("<b>Variations:</b>")
    parts.extend(f"• <code>{escape(variation)}</code>" for variation in analysis.variations)
    await update.message.reply_text("\n".join(parts), parse_mode=ParseMode.HTML, disable_web_page_preview=True)


async def merge_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not _is_admin(update, context):
        await update.message.reply_text("Only administrators can merge bookmarks.")
        return

    parsed = _parse_merge_args(context.args or [])
    if parsed is None:
        await update.message.reply_text(
            "Usage: <code>/merge &lt;primary&gt; &lt;duplicate&gt; [duplicate…] [--no-tags] [--no-metadata]</code>",
            parse_mode=ParseMode.HTML,
        )
        return

    primary_id, duplicate_ids, merge_tags, merge_metadata = parsed
    try:
        result = await _service(context).merge_duplicates(primary_id, duplicate_ids, merge_tags, merge_metadata)
    except (BookmarkNotFoundError, MergeError) as exc:
        await update.message.reply_text(f"Nothing merged: {exc}")
        return
    except MaintenanceError:
        logger.exception("Merge of %s into %s failed", duplicate_ids, primary_id)
        await update.message.reply_text("The merge failed before any bookmark was deleted. Please try again later.")
        return

    message = f"✅ Merged {len(result.merged_ids)} duplicate(s) into #{primary_id}."
    if result.skipped_ids:
        message += f"\nSkipped (not found): {', '.join(str(i) for i in result.skipped_ids)}"
    if result.partial:
        message += f"\n⚠️ Could not delete: {', '.join(str(i) for i in result.failed_deletions)}"
    await update.message.reply_text(message)


def _parse_merge_args(args: List[str]) -> Optional[Tuple[int, List[int], bool, bool]]:
    merge_tags = True
    merge_metadata = True
    ids: List[int] = []
    for arg in args:
        if arg == "--no-tags":
            merge_tags = False
            continue
        if arg == "--no-metadata":
            merge_metadata = False
            continue
        value = _parse_id(arg)
        if value is None:
            return None
        ids.append(value)

    if len(ids) < 2:
        return None
    return ids[0], ids[1:], merge_tags, merge_metadata


def _render_health(record: HealthRecord) -> str:
    """Formats a health record for HTML delivery."""
    icon = STATUS_ICONS.get(record.status, "")
    parts = [f"{icon} <b>#{record.bookmark_id}</b> {escape(record.status.value)}"]
    if record.url:
        parts.append(escape(record.url))
    details = []
    if record.status_code:
        details.append(f"HTTP {record.status_code}")
    if record.response_time_ms:
        details.append(f"{record.response_time_ms} ms")
    if details:
        parts.append(" · ".join(details))
    if record.redirect_url:
        parts.append(f"→ {escape(record.redirect_url)}")
    if record.error:
        parts.append(f"<i>{escape(record.error)}</i>")
    parts.append(f"<i>Checked {record.last_checked.strftime('%d %b %Y %H:%M')}</i>")
    return "\n".join(parts)


def _render_group(group: DuplicateGroup) -> str:
    primary = group.primary
    lines = [
        f"<b>#{primary.id}</b> <a href=\"{escape(primary.url)}\">{escape(primary.title or primary.url)}</a>",
        f"<i>{escape(group.reason)} · confidence {group.confidence:.0%}</i>",
    ]
    lines.extend(
        f"  ↳ #{duplicate.id} {escape(duplicate.url)}" for duplicate in group.duplicates
    )
    ids = " ".join(str(i) for i in [primary.id, *group.duplicate_ids])
    lines.append(f"<code>/merge {ids}</code>")
    return "\n".join(lines)
