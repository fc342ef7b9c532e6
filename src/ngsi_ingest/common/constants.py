"""Constants shared by the collector and its collaborators."""

# Attribute typing
TIMESTAMP_ATTRIBUTE = "TimeInstant"
TIMESTAMP_TYPE_NGSI2 = "DateTime"
DEFAULT_ATTRIBUTE_TYPE = "string"
LD_CONTEXT_ATTRIBUTE = "@context"

# Payload dialects
PAYLOAD_PLAIN = "plain"
PAYLOAD_NGSIV2 = "ngsiv2"
PAYLOAD_NGSILD = "ngsild"

# Topic sentinels
CONFIGURATION_TOKEN = "configuration"
COMMANDS_TOKEN = "commands"
CONFIGURATION_VALUES_TOKEN = "values"

# Configuration request types
CONFIGURATION_REQUEST_TYPE = "configuration"

# Alarms
MQTTB_ALARM = "MQTTB-ALARM"
ORION_ALARM = "ORION-ALARM"

# Transports
TRANSPORT_MQTT = "MQTT"
TRANSPORT_AMQP = "AMQP"

# Logging operation tag
LOG_OPERATION = "NGSIIngest.Collector"
