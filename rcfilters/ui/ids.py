from __future__ import annotations

__all__ = ["IDs"]


class IDs:
    class Store:
        LOCATION = "location"
        PREFERENCES = "preferences"

    class Control:
        FILTER_CHECKLIST = "filter-checklist"
        HIGHLIGHT_SWITCH = "highlight-switch"
        INVERT_SWITCH = "invert-switch"
        CLEAR_ALL_BTN = "clear-all-btn"

        # Saved queries
        QUERY_LABEL_INPUT = "query-label-input"
        SAVE_QUERY_BTN = "save-query-btn"
        SAVED_QUERY_SELECT = "saved-query-select"
        APPLY_QUERY_BTN = "apply-query-btn"
        DEFAULT_QUERY_BTN = "default-query-btn"
        REMOVE_QUERY_BTN = "remove-query-btn"

        RESULTS = "results"
