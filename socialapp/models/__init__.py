from .users import (  # noqa: F401
    User,
    RelationshipEdit,
    parse_user_id,
    new_user_document,
    USERS_COLLECTION,
    IMAGES_COLLECTION,
    RELATIONSHIP_FIELDS,
    FRIENDS,
    FRIEND_REQUESTS_IN,
    FRIEND_REQUESTS_OUT,
)
