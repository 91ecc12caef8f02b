"""Local client API constants: opcodes, event names, endpoints and signals.

Pure data module -- no imports, no logic. Safe to import from any lcu_core
module without risk of circular dependencies.
"""

# ── WebSocket opcodes ─────────────────────────────────────────────────

OP_SUBSCRIBE = 5
OP_UNSUBSCRIBE = 6
OP_EVENT = 8

# ── Subscribable event names ──────────────────────────────────────────

EVENT_GAMEFLOW_PHASE = "OnJsonApiEvent_lol-gameflow_v1_gameflow-phase"
EVENT_CHAMP_SELECT_SESSION = "OnJsonApiEvent_lol-champ-select_v1_session"
EVENT_LOBBY = "OnJsonApiEvent_lol-lobby_v2_lobby"

# ── REST endpoints ────────────────────────────────────────────────────

PATH_CURRENT_SUMMONER = "/lol-summoner/v1/current-summoner"
PATH_GAMEFLOW_PHASE = "/lol-gameflow/v1/gameflow-phase"
PATH_GAMEFLOW_SESSION = "/lol-gameflow/v1/session"
PATH_CHAMP_SELECT_SESSION = "/lol-champ-select/v1/session"
PATH_CHAMP_SELECT_ACTION = "/lol-champ-select/v1/session/actions/{action_id}"
PATH_LOBBY = "/lol-lobby/v2/lobby"
PATH_READY_CHECK_ACCEPT = "/lol-matchmaking/v1/ready-check/accept"
PATH_OWNED_CHAMPIONS = "/lol-champions/v1/owned-champions-minimal"
PATH_CHAMPION_SUMMARY = "/lol-game-data/assets/v1/champion-summary.json"

CHAMP_SELECT_PREFIX = "/lol-champ-select/"

# ── Gameflow phases ───────────────────────────────────────────────────

PHASE_NONE = "None"
PHASE_LOBBY = "Lobby"
PHASE_MATCHMAKING = "Matchmaking"
PHASE_READY_CHECK = "ReadyCheck"
PHASE_CHAMP_SELECT = "ChampSelect"
PHASE_IN_PROGRESS = "InProgress"
PHASE_WAITING_FOR_STATS = "WaitingForStats"
PHASE_PRE_END_OF_GAME = "PreEndOfGame"
PHASE_END_OF_GAME = "EndOfGame"

TIMER_PHASE_FINALIZATION = "FINALIZATION"

ACTION_PICK = "pick"
ACTION_BAN = "ban"

# ── Internal typed events (Connection Manager -> trackers) ────────────

SIG_EVENT = "event"
SIG_GAMEFLOW_PHASE = "gameflow-phase"
SIG_CHAMP_SELECT_SESSION = "champ-select-session"
SIG_LOBBY_SESSION = "lobby-session"
SIG_SESSION_UPDATED = "session-updated"

# ── Outbound signals ──────────────────────────────────────────────────

SIG_CONNECTED = "connected"
SIG_DISCONNECTED = "disconnected"
SIG_ERROR = "error"
SIG_PHASE_CHANGED = "phase-changed"
SIG_CHAMPION_SELECTED = "champion-selected"
SIG_QUEUE_ID_DETECTED = "queue-id-detected"
SIG_READY_CHECK_ACCEPTED = "ready-check-accepted"
SIG_TEAM_COMPOSITION_UPDATED = "team-composition-updated"
SIG_READY_FOR_SMART_APPLY = "ready-for-smart-apply"
SIG_TEAM_RESET = "team-reset"
SIG_ACTION_PERFORMED = "action-performed"

# ── Settings keys ─────────────────────────────────────────────────────

SETTING_LEAGUE_CLIENT_ENABLED = "leagueClientEnabled"
SETTING_GAME_PATH = "gamePath"
SETTING_AUTO_ACCEPT_ENABLED = "autoAcceptEnabled"
SETTING_AUTO_PICK_ENABLED = "autoPickEnabled"
SETTING_AUTO_PICK_FORCE = "autoPickForce"
SETTING_AUTO_PICK_CHAMPIONS = "autoPickChampions"
SETTING_AUTO_BAN_ENABLED = "autoBanEnabled"
SETTING_AUTO_BAN_FORCE = "autoBanForce"
SETTING_AUTO_BAN_CHAMPIONS = "autoBanChampions"
SETTING_AUTO_APPLY_TRIGGER_TIME = "autoApplyTriggerTime"

# ── Fixed timings (seconds) ───────────────────────────────────────────

HEALTH_CHECK_INTERVAL = 3.0
RECONNECT_DELAY = 5.0
AUTO_CONNECT_INTERVAL = 5.0
READY_CHECK_GRACE = 2.0
SESSION_POLL_INTERVAL = 1.0
AUTO_BAN_PICK_INTERVAL = 0.3
REQUEST_TIMEOUT = 5.0
