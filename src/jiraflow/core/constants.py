"""
Shared constants - settings keys and defaults.

Settings are stored as plain strings in the task store's key/value table,
so every key the application reads or writes is declared here.
"""

# Remote tracker connection
SETTING_JIRA_HOST = "jira_host"
SETTING_JIRA_USERNAME = "jira_username"
SETTING_JIRA_STORY_POINTS_FIELD = "jira_storyPointsField"

# Board / sprint discovered by the last full sync
SETTING_BOARD_ID = "jira_boardId"
SETTING_BOARD_NAME = "jira_boardName"
SETTING_SPRINT_ID = "jira_activeSprintId"
SETTING_SPRINT_NAME = "jira_activeSprintName"
SETTING_SPRINT_STATE = "jira_activeSprintState"

# Sync cursor
SETTING_LAST_SYNC = "jira_lastSync"
SETTING_LAST_SYNC_COUNT = "jira_lastSyncCount"
SETTING_SYNC_METHOD = "jira_syncMethod"

SETTING_AUTO_SYNC_INTERVAL = "jira_autoSyncInterval"
SETTING_VAULT_PATH = "obsidian_vault_path"

# Custom status overrides are stored as "status_map_<lower-cased status>"
STATUS_MAP_PREFIX = "status_map_"

CURSOR_SETTING_KEYS = (
    SETTING_LAST_SYNC,
    SETTING_LAST_SYNC_COUNT,
    SETTING_SYNC_METHOD,
)

DEFAULT_AUTO_SYNC_MINUTES = 5
MIN_AUTO_SYNC_MINUTES = 1
DEFAULT_CURSOR_MAX_AGE_HOURS = 24.0
DEFAULT_REMOTE_TIMEOUT = 30.0

DEFAULT_STORY_POINTS_FIELD = "customfield_10016"
DEFAULT_PLANNED_END_FIELD = "customfield_10329"

BACKLOG_SPRINT = "Backlog"
LOCAL_KEY_PREFIX = "ME-"
MANUAL_LOG_PREFIX = "MANUAL-"
DEFAULT_PAGE_SIZE = 100
