from askai.models.user_setting import UserActiveProvider, UserSetting

__all__ = [
    "UserActiveProvider",
    "UserSetting",
]
