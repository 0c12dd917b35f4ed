"""TeleGit: manage GitHub issues from Telegram group chats.

Messages tagged with a hashtag or mentioning the bot are classified into an
intent, executed against the group's repository and answered with a
short-lived feedback reply that can be dismissed (👍) or used to undo the
action (👎).
"""

__version__ = "0.1.0"
