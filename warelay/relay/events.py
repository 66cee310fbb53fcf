"""Socket.IO event names shared with the frontend."""

# server -> client
QR = "qr"
STATUS = "status"
CHATS = "chats"
INITIAL_STATUS = "initial-status"
NEW_MESSAGE = "new_message"
MESSAGE_ACK_UPDATE = "message_ack_update"
CHAT_MESSAGES = "chat-messages"
MESSAGE_MEDIA_DATA = "message-media-data"
MESSAGE_MEDIA_FAILED = "message-media-failed"
MESSAGE_SENT_CONFIRMATION = "message_sent_confirmation"
SEND_MESSAGE_ERROR = "send_message_error"
LOGGED_OUT = "logged_out"
ERROR_MESSAGE = "error-message"

# client -> server
REQUEST_INITIAL_STATUS = "request-initial-status"
START_SESSION = "start-session"
GET_CHATS = "get-chats"
GET_CHAT_MESSAGES = "get-chat-messages"
GET_MESSAGE_MEDIA = "get-message-media"
SEND_MESSAGE = "send-message"
LOGOUT = "logout"
