from reattachd.schemas.device import (
    DeviceRead,
    RegisterError,
    RegisterRequest,
    RegisterResponse,
    SetupTokenCreate,
    SetupTokenRead,
)
from reattachd.schemas.notification import NotificationCreate, PushEndpointCreate
from reattachd.schemas.session import InputRequest, OutputRead, SessionCreate
