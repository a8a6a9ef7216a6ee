"""Константы протокола: типы сообщений, причины, таймауты по умолчанию."""

# Таймауты (секунды)
DEFAULT_HEARTBEAT_INTERVAL = 30
DEFAULT_HEARTBEAT_TIMEOUT = 60
DEFAULT_RECONNECTION_WINDOW = 120
DEFAULT_TOKEN_REISSUE_COOLDOWN = 30

# Входящие
INIT_GAME = "init_game"
MOVE = "move"
RESIGN = "resign"
OFFER_DRAW = "offer_draw"
DRAW_ACCEPTED = "draw_accepted"
DRAW_DECLINED = "draw_declined"
RECONNECT_REQUEST = "reconnect_request"
PONG = "pong"

# Исходящие
CONNECTION_ESTABLISHED = "connection_established"
UPDATE_BOARD = "update_board"
DRAW_OFFER = "draw_offer"
GAME_OVER = "game_over"
OPPONENT_DISCONNECTED_TEMP = "opponent_disconnected_temporarily"
OPPONENT_RECONNECTED = "opponent_reconnected"
RECONNECTION_TOKEN = "reconnection_token"
RECONNECTION_SUCCESSFUL = "reconnection_successful"
RECONNECTION_FAILED = "reconnection_failed"
PING = "ping"

GAME_ACTIONS = frozenset({MOVE, RESIGN, OFFER_DRAW, DRAW_ACCEPTED, DRAW_DECLINED})

# Причины завершения партии (winType)
CHECKMATE = "checkmate"
STALEMATE = "stalemate"
INSUFFICIENT_MATERIAL = "insufficient_material"
THREEFOLD_REPETITION = "threefold_repetition"
FIFTY_MOVE_RULE = "fifty_move_rule"
DRAW = "draw"
RESIGNATION = "resignation"
DISCONNECTION = "disconnection"

# Причины отказа
OUT_OF_TURN = "OUT_OF_TURN"
ILLEGAL_MOVE = "ILLEGAL_MOVE"
INVALID_OR_EXPIRED = "INVALID_OR_EXPIRED"
SESSION_GONE = "SESSION_GONE"
ALREADY_ENDED = "ALREADY_ENDED"
ALREADY_IN_GAME = "ALREADY_IN_GAME"

# Коды закрытия websocket
CLOSE_ORIGIN_REJECTED = 4003
CLOSE_STALE = 4008
CLOSE_SUPERSEDED = 4000
