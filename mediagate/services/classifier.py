from mediagate.config.settings import ConvertConfig
from mediagate.models.internal import MediaRequest, Strategy


def classify(request: MediaRequest, convert: ConvertConfig) -> Strategy:
    """
    Pick the response strategy; custom conversion wins over audio.

    Custom conversion needs both the customConvert switch (present, any value)
    and a customFormat to convert to.
    """
    if convert.convert_advanced and request.custom_convert and request.custom_format:
        return Strategy.CUSTOM

    if convert.convert and request.audio:
        return Strategy.AUDIO

    return Strategy.RAW
