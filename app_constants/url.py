class BaseUrl:
    base_url: str = "/api/v1"

class Routes:
    files: str = f"{BaseUrl.base_url}/files"
    folders: str = f"{BaseUrl.base_url}/folders"
    shares: str = f"{BaseUrl.base_url}/shares"
    storage: str = f"{BaseUrl.base_url}/storage"
    system: str = f"{BaseUrl.base_url}/system"
    public_share: str = "/share"


class FilesAPI:
    list_files: str = ""
    upload: str = "/upload"
    file: str = "/{file_id}"
    download: str = "/{file_id}/download"
    rename: str = "/{file_id}/rename"

class FolderAPI:
    create: str = ""

class StorageAPI:
    info: str = ""

class SystemAPI:
    get_disk: str = "/disk"

class SharesAPI:
    list_shares: str = ""
    create: str = ""
    check: str = "/check/{file_id}"
    stop: str = "/{share_id}"

class PublicShareAPI:
    open: str = "/{token}"
