"""Wire event names, shared by the dispatcher and the services that push."""

# Inbound (connection -> server)
SELECT_ROLE = "select-role"
LOCATION_UPDATE = "location-update"
GET_LOCATIONS = "get-locations"
CREATE_REQUEST = "create-request"
ACCEPT_REQUEST = "accept-request"
CANCEL_REQUEST = "cancel-request"
COMPLETE_REQUEST = "complete-request"

# Outbound (server -> connection)
CONNECTION_ESTABLISHED = "connection-established"
ROLE_SELECTED = "role-selected"
LOCATION_SHARED = "location-shared"
LOCATIONS_DATA = "locations-data"
USER_OFFLINE = "user-offline"
NEW_REQUEST = "new-request"
REQUEST_CREATED = "request-created"
REQUEST_ACCEPTED = "request-accepted"
REQUEST_CANCELLED = "request-cancelled"
REQUEST_COMPLETED = "request-completed"
ERROR = "error"
