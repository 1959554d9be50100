from __future__ import annotations

from .access import (
    handle_authorize,
    handle_authorized,
    handle_help,
    handle_request,
    handle_requests,
    handle_resolve_request,
    handle_start,
    handle_unauthorize,
    is_authorized,
)
from .admin import (
    handle_clear_board,
    handle_network,
    handle_reconnect,
    handle_settings,
    handle_stats,
)
from .cancel import handle_cancel
from .cards import (
    advance_idea_capture,
    capture_card,
    handle_add_idea,
    handle_boards,
    handle_complete_card,
    handle_coming_soon,
    handle_idea_list,
    handle_lists,
    handle_search,
    handle_select_board,
    handle_select_list,
    handle_status,
    handle_view,
    handle_view_list_cards,
    send_updated_card_list,
)
from .workspace import (
    advance_workspace_setup,
    handle_remove_workspace,
    handle_set_workspace,
    handle_workspace,
    parse_credentials,
)

__all__ = [
    "advance_idea_capture",
    "advance_workspace_setup",
    "capture_card",
    "handle_add_idea",
    "handle_authorize",
    "handle_authorized",
    "handle_boards",
    "handle_cancel",
    "handle_clear_board",
    "handle_coming_soon",
    "handle_complete_card",
    "handle_help",
    "handle_idea_list",
    "handle_lists",
    "handle_network",
    "handle_reconnect",
    "handle_remove_workspace",
    "handle_request",
    "handle_requests",
    "handle_resolve_request",
    "handle_search",
    "handle_select_board",
    "handle_select_list",
    "handle_set_workspace",
    "handle_settings",
    "handle_start",
    "handle_stats",
    "handle_status",
    "handle_unauthorize",
    "handle_view",
    "handle_view_list_cards",
    "handle_workspace",
    "is_authorized",
    "parse_credentials",
    "send_updated_card_list",
]
