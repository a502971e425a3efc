"""User-facing copy for fallback outcomes.

Tone: state facts about what happened and how much time is left, offer a
next step, and never suggest the content or the user's choice was wrong.
Internal error detail never appears here.
"""

from __future__ import annotations

from sanctuary.quota import describe_remaining

MSG_INVALID_REQUEST = "Missing required details. Let's try again."
MSG_PROFILE_NOT_FOUND = "Couldn't find your profile. Please try logging in again."
MSG_NOT_CONFIGURED = "Backup viewing isn't set up yet. Please contact support."
MSG_ALLOWANCE_USED = "You've completed today's allowance. Great progress! Fresh start tomorrow."


def downloaded(remaining_seconds: int) -> str:
    return (
        "The site blocked live view, so I fetched it for you. "
        f"Enjoy your remaining {describe_remaining(remaining_seconds)}."
    )


def screenshot_only(remaining_seconds: int) -> str:
    return (
        "This site restricts video downloads, so I captured a preview for you. "
        f"Try a different source for the full video. You have {describe_remaining(remaining_seconds)} today."
    )


def protected(remaining_seconds: int) -> str:
    return (
        "This site has strong protections. No worries, try another source "
        f"or talk it through with your guide. You still have {describe_remaining(remaining_seconds)} today."
    )
