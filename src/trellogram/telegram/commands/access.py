from __future__ import annotations

from ...logging import get_logger
from ...markdown import safe_markdown, strip_card_emoji
from ...trello import TrelloError
from .. import render
from ..actions import CompleteDeepLink, parse_auth_target, parse_start_param
from ..bridge import TelegramBridgeConfig, send_markdown, send_plain
from ..types import TelegramIncomingMessage
from .cards import send_updated_card_list

logger = get_logger(__name__)

ADMIN_ONLY = "❌ Admin only command."
_MEMBER_STATUSES = frozenset({"creator", "administrator", "member", "restricted"})


async def is_authorized(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> bool:
    return await cfg.auth.is_authorized(msg.sender_id, msg.chat_id, is_group=msg.is_group)


async def require_admin(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> bool:
    if cfg.auth.is_admin(msg.sender_id):
        return True
    await send_plain(cfg, msg.chat_id, ADMIN_ONLY)
    return False


async def handle_start(
    cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage, args: str
) -> None:
    link = parse_start_param(args.split()[0] if args else None)
    if link is not None:
        await _complete_from_link(cfg, msg, link)
        return

    if cfg.auth.is_admin(msg.sender_id):
        text = render.welcome_admin(msg.sender_name)
    elif await is_authorized(cfg, msg):
        text = render.welcome_authorized(msg.sender_name)
    else:
        text = render.welcome_unauthorized(
            msg.sender_name,
            is_group=msg.is_group,
            chat_id=msg.chat_id,
            chat_title=msg.chat_title,
        )
    await send_plain(cfg, msg.chat_id, text)


async def _is_member(cfg: TelegramBridgeConfig, chat_id: str, user_id: int) -> bool:
    member = await cfg.bot.get_chat_member(chat_id, user_id)
    if member is None:
        return False
    return member.get("status") in _MEMBER_STATUSES


async def _may_complete_for(
    cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage, origin: str
) -> bool:
    if cfg.auth.is_admin(msg.sender_id):
        return True
    if origin == str(msg.chat_id):
        return await is_authorized(cfg, msg)
    # the link opens a private chat; another chat's credentials are only used
    # for people who are in that chat and covered by some authorization
    if not (
        await cfg.auth.is_authorized_group(origin)
        or await cfg.auth.is_authorized_user(msg.sender_id)
    ):
        return False
    return await _is_member(cfg, origin, msg.sender_id)


async def _complete_from_link(
    cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage, link: CompleteDeepLink
) -> None:
    origin = link.chat_id or str(msg.chat_id)
    if not await _may_complete_for(cfg, msg, origin):
        logger.info(
            "start.complete.unauthorized",
            user_id=msg.sender_id,
            origin_chat_id=origin,
        )
        await send_plain(
            cfg, msg.chat_id, render.unauthorized(is_group=msg.is_group, chat_id=msg.chat_id)
        )
        return

    try:
        trello = await cfg.credentials.client_for(origin)
        card = await trello.get_card(link.card_id)
        await trello.archive_card(link.card_id)
    except TrelloError as exc:
        logger.warning(
            "start.complete.failed",
            card_id=link.card_id,
            origin_chat_id=origin,
            error=str(exc),
        )
        await send_plain(
            cfg,
            msg.chat_id,
            "❌ Failed to complete card. The card may have been deleted or you may not have access.",
        )
        return

    name = strip_card_emoji(card.name).strip()
    logger.info("start.complete.done", card_id=link.card_id, origin_chat_id=origin)
    await send_markdown(cfg, msg.chat_id, f"✅ Card completed: *{safe_markdown(name)}*")
    await send_updated_card_list(cfg, origin, link.list_id)


async def handle_help(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> None:
    text = render.help_text(
        is_admin=cfg.auth.is_admin(msg.sender_id),
        has_custom=await cfg.credentials.has_custom(msg.chat_id),
        bot_username=cfg.bot_username,
    )
    await send_markdown(cfg, msg.chat_id, text)


async def handle_request(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> None:
    if await is_authorized(cfg, msg):
        await send_plain(cfg, msg.chat_id, "✅ You already have access!")
        return
    kind = "group" if msg.is_group else "user"
    request = await cfg.auth.request_access(
        user_id=msg.sender_id,
        user_name=msg.sender_name,
        chat_id=msg.chat_id,
        chat_title=msg.chat_title or "Private Chat",
        kind=kind,
    )
    if request is None:
        await send_plain(
            cfg, msg.chat_id, "ℹ️ Request already pending. Please wait for admin approval."
        )
        return
    await send_plain(
        cfg,
        msg.chat_id,
        "📝 Access request submitted!\n\n"
        f"Your {kind} ID: {msg.chat_id}\n"
        "Status: Pending admin approval",
    )
    notice = render.access_request_notice(request)
    for admin_id in cfg.auth.admins:
        if await send_plain(cfg, admin_id, notice) is None:
            logger.warning("auth.request.notify_failed", admin_id=admin_id)


async def handle_authorize(
    cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage, args: str
) -> None:
    if not await require_admin(cfg, msg):
        return
    target = parse_auth_target(args)
    if target is None:
        await send_plain(cfg, msg.chat_id, "Usage: /authorize <user_id> or /authorize group:<group_id>")
        return
    if target.kind == "group":
        changed = await cfg.auth.authorize_group(target.target_id)
    else:
        changed = await cfg.auth.authorize_user(target.target_id)
    if not changed:
        await send_plain(cfg, msg.chat_id, f"ℹ️ {target.kind} already authorized.")
        return
    await send_plain(cfg, msg.chat_id, f"✅ Authorized {target.kind}: {target.target_id}")
    await _notify_granted(cfg, target.target_id)


async def _notify_granted(cfg: TelegramBridgeConfig, chat_id: str) -> None:
    sent = await send_plain(
        cfg,
        chat_id,
        "🎉 Access granted! You can now use the bot.\n\nType /trellohelp to see available commands.",
    )
    if sent is None:
        logger.info("auth.notify_failed", chat_id=chat_id)


async def handle_unauthorize(
    cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage, args: str
) -> None:
    if not await require_admin(cfg, msg):
        return
    target = parse_auth_target(args)
    if target is None:
        await send_plain(
            cfg, msg.chat_id, "Usage: /unauthorize <user_id> or /unauthorize group:<group_id>"
        )
        return
    if target.kind == "group":
        changed = await cfg.auth.unauthorize_group(target.target_id)
    else:
        changed = await cfg.auth.unauthorize_user(target.target_id)
    if changed:
        await send_plain(
            cfg, msg.chat_id, f"✅ Removed authorization for {target.kind}: {target.target_id}"
        )
    else:
        await send_plain(
            cfg,
            msg.chat_id,
            f"❌ Could not unauthorize {target.kind} (not found or is admin).",
        )


async def handle_requests(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> None:
    if not await require_admin(cfg, msg):
        return
    requests = await cfg.auth.pending_requests()
    await send_markdown(cfg, msg.chat_id, render.pending_requests(requests))


def _parse_request_number(args: str) -> int | None:
    value = args.strip().lstrip("#")
    if not value.isdigit() or int(value) < 1:
        return None
    return int(value) - 1


async def handle_resolve_request(
    cfg: TelegramBridgeConfig,
    msg: TelegramIncomingMessage,
    args: str,
    *,
    approve: bool,
) -> None:
    if not await require_admin(cfg, msg):
        return
    verb = "approve" if approve else "reject"
    index = _parse_request_number(args)
    if index is None:
        await send_plain(cfg, msg.chat_id, f"Usage: /{verb} <request number from /requests>")
        return
    if approve:
        request = await cfg.auth.approve_request(index)
    else:
        request = await cfg.auth.reject_request(index)
    if request is None:
        await send_plain(cfg, msg.chat_id, f"❌ No pending request #{index + 1}.")
        return
    target = request.chat_id if request.kind == "group" else request.user_id
    if approve:
        await send_plain(cfg, msg.chat_id, f"✅ Approved {request.kind}: {target}")
        await _notify_granted(cfg, request.chat_id)
    else:
        await send_plain(cfg, msg.chat_id, f"🚫 Rejected {request.kind}: {target}")


async def handle_authorized(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> None:
    if not await require_admin(cfg, msg):
        return
    listing = await cfg.auth.authorized_list()
    stats = await cfg.auth.stats()
    await send_markdown(cfg, msg.chat_id, render.authorized_list(listing, stats))
