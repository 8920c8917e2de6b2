from buildparts.config.io import load_config as load_config
from buildparts.config.models import BuildPartsConfig as BuildPartsConfig
from buildparts.config.models import PublishConfig as PublishConfig
