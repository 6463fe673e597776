from .accepted_friendship import AcceptedFriendship
from .friendship import Friendship, FriendshipStatus

__all__ = [
    "Friendship",
    "FriendshipStatus",
    "AcceptedFriendship",
]
