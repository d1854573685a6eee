"""
Credential email content: HTML body, plain-text body, JSON key file.

Full bundles carry all four authority tiers. Partial backups carry only
the custodied posting tier and tell the recipient, in every part of the
message, that the other tiers were never stored and that the sponsor is
the only way to recover them.
"""

import html
import json
from dataclasses import dataclass
from datetime import UTC, datetime

from userbase.models.domain import HiveAccountKeys

TIER_NOTES = {
    "owner": "Most powerful key - store offline! Use for account recovery only.",
    "active": "Use for transfers, trading, power up/down operations.",
    "posting": "Use for daily activities: posting, commenting, voting.",
    "memo": "Use for encrypting messages and transfer memos.",
}

PARTIAL_NOTE = (
    "This is a PARTIAL backup containing only your posting key. Other keys "
    "(owner, active, memo) were not stored by the system and cannot be recovered. "
    "If you need these keys, please contact your sponsor."
)


@dataclass(frozen=True)
class CredentialEmail:
    subject: str
    html: str
    text: str
    attachment_name: str
    attachment: bytes


def _tiers(keys: HiveAccountKeys) -> list[tuple[str, str, str]]:
    tiers = [("posting", keys.posting, keys.posting_public)]
    if not keys.is_partial:
        tiers = [
            ("owner", keys.owner, keys.owner_public),
            ("active", keys.active, keys.active_public),
            *tiers,
            ("memo", keys.memo, keys.memo_public),
        ]
    return tiers


def _key_file(
    username: str,
    sponsor_username: str,
    keys: HiveAccountKeys,
    is_backup: bool,
    base_url: str,
    now: datetime,
) -> bytes:
    document: dict[str, object] = {"username": f"@{username}"}
    if keys.is_partial:
        document.update(backup_type="partial", backup_date=now.isoformat(), note=PARTIAL_NOTE)
    else:
        document["sponsored_by"] = f"@{sponsor_username}"
        document["backup_date" if is_backup else "created_at"] = now.isoformat()
        document["created_via"] = "skatehive_sponsorship"
    document["keys"] = {
        tier: {"private": private, "public": public, "note": TIER_NOTES[tier]}
        for tier, private, public in _tiers(keys)
    }
    document["security_notice"] = (
        "CRITICAL: Keep these keys private and secure. They cannot be recovered if lost. "
        "Never share them with anyone."
    )
    document["useful_links"] = {
        "keychain": "https://hive-keychain.com/",
        "profile": f"https://peakd.com/@{username}",
        "settings": f"{base_url}/settings/hive-account",
    }
    return json.dumps(document, indent=2).encode()


def _text_body(
    username: str, sponsor_username: str, keys: HiveAccountKeys, is_backup: bool, base_url: str
) -> str:
    if is_backup:
        lines = [f"Hive key backup for @{username}", ""]
    else:
        lines = [
            f"Welcome to Hive, @{username}!",
            "",
            f"You've been sponsored by @{sponsor_username} and now have a full Hive account.",
            "",
        ]
    if keys.is_partial:
        lines += [
            "PARTIAL BACKUP - POSTING KEY ONLY",
            "Your owner, active and memo keys were never stored by the system and cannot be",
            f"recovered here. If you need them, contact your sponsor @{sponsor_username}.",
            "",
        ]
    lines += [
        "CRITICAL: Save your keys. They are the ONLY way to access your account",
        "and cannot be recovered if lost.",
        "",
    ]
    for tier, private, public in _tiers(keys):
        lines += [
            f"{tier.upper()} KEY ({TIER_NOTES[tier]})",
            f"  private: {private}",
            f"  public:  {public}",
            "",
        ]
    lines += [
        "The attached JSON file contains the same keys.",
        f"Account settings: {base_url}/settings/hive-account",
        "Staff will never ask for your private keys.",
    ]
    return "\n".join(lines)


def _html_body(
    username: str, sponsor_username: str, keys: HiveAccountKeys, is_backup: bool, base_url: str
) -> str:
    user = html.escape(username)
    sponsor = html.escape(sponsor_username)
    heading = "🔑 Hive Key Backup" if is_backup else "🎉 Your Hive Account is Ready!"
    intro = (
        f"<p>This is a backup of your Hive keys for <strong>@{user}</strong>.</p>"
        if is_backup
        else f"<p>You've been sponsored by <strong>@{sponsor}</strong> and now have a full "
        f"Hive account: <strong>@{user}</strong>.</p>"
    )
    partial = (
        '<div style="background:#FFA726;color:#000;padding:16px;border-radius:8px;">'
        "<h3>⚠️ Partial Backup - Posting Key Only</h3>"
        "<p>Other keys (owner, active, memo) were not stored by the system and cannot be "
        f"recovered. If you need them, please contact your sponsor: <strong>@{sponsor}</strong></p>"
        "</div>"
        if keys.is_partial
        else ""
    )
    rows = "".join(
        f"<tr><td><strong>{tier.title()}</strong>"
        f"<br><small>{html.escape(TIER_NOTES[tier])}</small></td>"
        f"<td><code>{html.escape(private)}</code><br><code>{html.escape(public)}</code></td></tr>"
        for tier, private, public in _tiers(keys)
    )
    return (
        '<div style="font-family:Segoe UI,Tahoma,sans-serif;background:#1a1a1a;color:#e0e0e0;'
        'max-width:600px;margin:30px auto;padding:30px;border-radius:12px;">'
        f"<h1>{heading}</h1>"
        f"{intro}{partial}"
        '<div style="background:#d32f2f;color:#fff;padding:16px;border-radius:8px;">'
        "<strong>CRITICAL: Save your keys.</strong> They are the ONLY way to access your "
        "account and cannot be recovered if lost.</div>"
        f'<table style="width:100%;margin-top:20px;">{rows}</table>'
        "<p>The attached JSON file contains the same keys.</p>"
        f'<p><a href="{html.escape(base_url)}/settings/hive-account" style="color:#4CAF50;">'
        "View Account Settings</a></p>"
        "<p><small>Staff will never ask for your private keys.</small></p>"
        "</div>"
    )


def render_credential_email(
    username: str,
    sponsor_username: str,
    keys: HiveAccountKeys,
    is_backup: bool,
    base_url: str,
    now: datetime | None = None,
) -> CredentialEmail:
    now = now or datetime.now(UTC)
    if is_backup:
        subject = f"🔑 Hive Key Backup for @{username}"
        if keys.is_partial:
            subject += " (Posting Key Only)"
    else:
        subject = f"🎉 Your Hive account @{username} is ready!"
    return CredentialEmail(
        subject=subject,
        html=_html_body(username, sponsor_username, keys, is_backup, base_url),
        text=_text_body(username, sponsor_username, keys, is_backup, base_url),
        attachment_name=f"hive-keys-{username}{'-backup' if is_backup else ''}.json",
        attachment=_key_file(username, sponsor_username, keys, is_backup, base_url, now),
    )
