"""Constants for the alternative file storage client."""

# Endpoints
DEFAULT_ENDPOINT = "s3.amazonaws.com"
CLOUDFRONT_ENDPOINT = "cloudfront.amazonaws.com"
CLOUDFRONT_API_VERSION = "2010-11-01"

# XML namespaces
S3_XMLNS = "http://s3.amazonaws.com/doc/2006-03-01/"
CLOUDFRONT_XMLNS = f"http://cloudfront.amazonaws.com/doc/{CLOUDFRONT_API_VERSION}/"
XSI_XMLNS = "http://www.w3.org/2001/XMLSchema-instance"

# Canned ACLs
ACL_PRIVATE = "private"
ACL_PUBLIC_READ = "public-read"
ACL_PUBLIC_READ_WRITE = "public-read-write"
ACL_AUTHENTICATED_READ = "authenticated-read"

# Storage classes
STORAGE_CLASS_STANDARD = "STANDARD"
STORAGE_CLASS_RRS = "REDUCED_REDUNDANCY"

# Server-side encryption
SSE_NONE = ""
SSE_AES256 = "AES256"

# Grantee types
GRANTEE_CANONICAL_USER = "CanonicalUser"
GRANTEE_EMAIL = "AmazonCustomerByEmail"
GRANTEE_GROUP = "Group"

LOG_DELIVERY_GROUP_URI = "http://acs.amazonaws.com/groups/s3/LogDelivery"

# Query parameters that take part in the canonical resource
SUB_RESOURCES = frozenset(
    {
        "acl",
        "cors",
        "delete",
        "lifecycle",
        "location",
        "logging",
        "notification",
        "partNumber",
        "policy",
        "requestPayment",
        "response-cache-control",
        "response-content-disposition",
        "response-content-encoding",
        "response-content-language",
        "response-content-type",
        "response-expires",
        "tagging",
        "torrent",
        "uploadId",
        "uploads",
        "versionId",
        "versioning",
        "versions",
        "website",
    }
)

AMZ_HEADER_PREFIX = "x-amz-"
AMZ_META_PREFIX = "x-amz-meta-"

# Transfer tuning
CHUNK_SIZE = 64 * 1024
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 300.0

# Form upload defaults
DEFAULT_UPLOAD_MAX_SIZE = 5 * 1024 * 1024
DEFAULT_UPLOAD_LIFETIME = 3600

# Parser failure code
PARSE_ERROR_CODE = "ResponseParseError"
UNEXPECTED_STATUS_MESSAGE = "Unexpected HTTP status"
MISSING_INPUT_MESSAGE = "Missing input parameters"

# Plugin destinations
DESTINATION_S3 = "s3"
DESTINATION_SPACE = "space"
DESTINATION_GCS = "gcs"

PROBE_OBJECT_NAME = ".storage-probe"
