"""User-facing chat texts produced by the workflow, undo, setup and command handlers."""

from telegit.enums import ActionKind, ErrorCode, IntentType
from telegit.models.domain import ActionDescriptor, ActionResult, Intent

UNKNOWN_INTENT = (
    "❓ I couldn't determine what action you want me to take.\n\n"
    'Try being more specific, or use keywords like "bug", "task", or "feature idea".'
)

ERROR_MESSAGES = {
    ErrorCode.MISSING_MESSAGE_TEXT: "❌ No message text found. Please send a text message.",
    ErrorCode.INTENT_CLASSIFICATION_ERROR: "😵‍💫 I had trouble understanding your message. Please try rephrasing it.",
    ErrorCode.FORMATTING_ERROR: "❌ There was an issue preparing your request.",
    ErrorCode.GITHUB_EXECUTION_ERROR: "😵‍💫 GitHub rejected the request. Please check the repository and try again.",
    ErrorCode.ACTION_TIMEOUT: "⏱️ GitHub took too long to answer. Please try again later.",
    ErrorCode.STORAGE_ERROR: "⚠️ Your request was processed but couldn't be saved to the database.",
}
GENERIC_ERROR = "😵‍💫 An error occurred while processing your request."

UNDO_SUCCESS = "✅ Operation undone successfully."
UNDO_ALREADY_DONE = "ℹ️ This operation has already been undone."
UNDO_NOT_POSSIBLE = "ℹ️ This operation cannot be undone."


def low_confidence(confidence: float) -> str:
    return (
        f"🤔 I'm not very confident about this request ({round(confidence * 100)}%).\n\n"
        "Could you rephrase or add more details?"
    )


def unknown_reply(intent: Intent | None) -> str:
    """Explain why no action was taken."""
    if intent is None or intent.type == IntentType.UNKNOWN:
        return UNKNOWN_INTENT
    return low_confidence(intent.confidence)


def error_reply(code: ErrorCode | None) -> str:
    return ERROR_MESSAGES.get(code, GENERIC_ERROR) if code else GENERIC_ERROR


def undo_failed(error: str) -> str:
    return f"❌ Failed to undo operation: {error}"


def success_reply(emoji: str, descriptor: ActionDescriptor, result: ActionResult) -> str:
    """Describe a successful tracker call."""
    if descriptor.kind == ActionKind.SEARCH:
        return _search_reply(descriptor, result)

    if descriptor.kind == ActionKind.UPDATE:
        text = f"{emoji} Issue #{result.issue_number} updated successfully!"
    else:
        text = f"{emoji} Issue created successfully!"

    if result.result_ref:
        text += f"\n\n📎 {result.result_ref}"
    return text


def _search_reply(descriptor: ActionDescriptor, result: ActionResult) -> str:
    issues = result.data.get("issues", [])
    total = result.data.get("total", len(issues))
    query = descriptor.payload.get("query") or "your search"

    if not issues:
        return f'🔍 No issues found for "{query}".'

    lines = [f'🔍 Found {total} issue(s) for "{query}":', ""]
    for issue in issues:
        lines.append(f"• #{issue['number']} {issue['title']}")
        lines.append(f"  {issue['url']}")
    if total > len(issues):
        lines.append("")
        lines.append(f"…and {total - len(issues)} more.")
    return "\n".join(lines)


SETUP_REPOSITORY_PROMPT = (
    "🔧 Let's set up GitHub integration!\n\n"
    "Send me the GitHub repository URL (HTTPS only), for example:\n"
    "https://github.com/owner/repo-name"
)
SETUP_NO_SESSION = (
    "👋 Hi! I'm TeleGit.\n\n"
    "To connect a group to GitHub:\n"
    "1. Add me to your Telegram group\n"
    "2. Send /start in the group\n"
    "3. I'll guide you through the setup here\n\n"
    "If you were in the middle of setup, please start again from your group chat."
)
SETUP_INVALID_REPOSITORY = (
    "❌ Invalid repository URL.\n\n"
    "Send a GitHub repository URL (HTTPS only) like:\n"
    "https://github.com/owner/repo-name"
)
SETUP_INVALID_TOKEN = (
    "❌ Invalid token format.\n\n"
    "GitHub Personal Access Tokens start with ghp_ or github_pat_. Please check your token and try again."
)
SETUP_TOKEN_NOT_DELETED = (
    "❌ I could not delete your token message from this chat.\n\n"
    "For your security, please:\n"
    "1. Revoke the token at https://github.com/settings/tokens\n"
    "2. Delete the message manually if possible\n"
    "3. Send a new token"
)
SETUP_DISABLED = "ℹ️ Linking groups from the chat is disabled on this bot. Ask the bot administrator to configure it."
SETUP_DM_FAILED = (
    "⚠️ I couldn't send you a private message. Open a chat with @{bot} and press Start, "
    "then send /start here again."
)
SETUP_SAVE_FAILED = "❌ Failed to save the configuration. Please try the setup again."
NOT_AUTHORIZED = "❌ You are not authorized to use this bot. Please contact your administrator."
GROUP_ONLY = "❌ This command only works in group chats."
NOT_LINKED = "ℹ️ This group is not linked to a GitHub repository.\n\nUse /start to set up GitHub integration."
MANAGER_ONLY = "❌ Only the group manager can {action}.\n\nPlease ask the manager to run this command."
CONFIGURED_BINDING = "ℹ️ This group is bound to {repository} in the bot's configuration file and cannot be unlinked here."
UNLINKED = "✅ Unlinked from {repository}.\n\nThe stored token was deleted. Use /start to set up a new connection."

_STATUS_TYPE_EMOJI = {
    "create_issue": "🆕",
    "update_issue": "✏️",
    "close_issue": "🔒",
    "reopen_issue": "🔓",
    "add_labels": "🏷️",
    "remove_labels": "🏷️",
    "search_issues": "🔍",
}


def setup_token_prompt(repository: str) -> str:
    return (
        f"✅ Repository set: {repository}\n\n"
        "Now send me a GitHub Personal Access Token with access to its issues.\n\n"
        "🔐 Create one at https://github.com/settings/tokens (classic tokens need the repo scope).\n"
        "I'll delete your message right away and store the token encrypted."
    )


def setup_access_denied(reason: str, repository: str) -> str:
    return f"❌ Token check failed: {reason}\n\nMake sure the token can access {repository}, then send it again."


def setup_complete(repository: str, bot_username: str) -> str:
    return (
        "✅ Setup complete!\n\n"
        f"Your group is now connected to {repository}.\n"
        f"Mention me (@{bot_username}) or use hashtags like #bug, #task or #idea there."
    )


def group_linked(repository: str) -> str:
    return f"✅ GitHub integration is set up! I'm ready to manage issues in {repository}."


def start_help(bot_username: str, repository: str | None) -> str:
    """Help text for /start, with the current binding when there is one."""
    lines = ["👋 TeleGit turns your messages into GitHub issues.", ""]
    if repository:
        lines += [f"📁 Repository: {repository}", ""]
    else:
        lines += ["I've sent you a private message to configure GitHub integration.", ""]
    lines += [
        "How to use:",
        f"• Mention me (@{bot_username}) in a message",
        "• Or use hashtags like #bug, #task, #idea",
        "• React 👍 to my reply to dismiss it, 👎 to undo the action",
        "",
        "Commands:",
        "/start - Show this help message",
        "/status - Operation statistics (manager only)",
        "/unlink - Disconnect from GitHub (manager only)",
    ]
    return "\n".join(lines)


def format_uptime(seconds: float) -> str:
    """Render a duration like ``1d 2h 3m 4s``, omitting zero parts."""
    seconds = int(seconds)
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)

    parts = [f"{value}{unit}" for value, unit in ((days, "d"), (hours, "h"), (minutes, "m")) if value]
    if secs or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def status_report(
    repository: str,
    manager_user_ref: int | None,
    by_status: dict[str, int],
    by_type: dict[str, int],
    uptime_seconds: float,
) -> str:
    """Operation statistics for /status."""
    total = sum(by_status.values())
    lines = [
        "📊 Group Status",
        "",
        f"📁 Repository: {repository}",
        f"👤 Manager: {manager_user_ref if manager_user_ref is not None else 'configuration file'}",
        "",
        f"📈 Total operations: {total}",
        f"✅ Completed: {by_status.get('completed', 0)}",
        f"⏳ Pending: {by_status.get('pending', 0)}",
        f"🔄 Processing: {by_status.get('processing', 0)}",
        f"❌ Failed: {by_status.get('failed', 0)}",
        f"↩️ Undone: {by_status.get('undone', 0)}",
        "",
        "By type:",
    ]
    if by_type:
        for action_type, count in sorted(by_type.items()):
            emoji = _STATUS_TYPE_EMOJI.get(action_type, "📝")
            lines.append(f"  {emoji} {action_type.replace('_', ' ')}: {count}")
    else:
        lines.append("  (none)")
    lines += ["", f"⏱️ Uptime: {format_uptime(uptime_seconds)}"]
    return "\n".join(lines)
