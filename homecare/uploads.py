"""
文件存储协作者 + 请求体整理。

intake 只认识「已存储的路径字符串」，所以上传文件必须在进 pipeline 之前换成路径。
存储用 Django default_storage（本地 MEDIA_ROOT，生产可换 S3 backend）。
"""

import logging
import os
import uuid
from collections.abc import Mapping

from django.core.files.base import File
from django.core.files.storage import default_storage

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

# 上传字段 → 存储目录
UPLOAD_FIELDS = {
    'request_details_files': 'requests/details',
    'attach_front_face': 'requests/insurance',
    'attach_back_face': 'requests/insurance',
}

# 这些字段永远保存为列表
LIST_FIELDS = ('request_details_files', 'physio_machines')


def store_upload(upload, field):
    """保存一个上传文件，返回存储路径。"""
    directory = UPLOAD_FIELDS.get(field, 'requests/misc')
    extension = os.path.splitext(upload.name or '')[1].lower()
    path = default_storage.save(f"{directory}/{uuid.uuid4().hex}{extension}", upload)
    logger.info("Stored upload for %s at %s", field, path)
    return path


def _plain_dict(data):
    """QueryDict / MultiValueDict / dict → 普通 dict；表单里的 `field[]` 去掉后缀。"""
    if hasattr(data, 'lists'):
        payload = {}
        for key, values in data.lists():
            name = key[:-2] if key.endswith('[]') else key
            if key.endswith('[]') or len(values) > 1:
                payload[name] = list(values)
            else:
                payload[name] = values[0] if values else None
        return payload
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValidationError(
            message='Request body must be a JSON object.',
            code='INVALID_PAYLOAD',
            detail={'received': type(data).__name__},
        )
    return dict(data)


def build_payload(data, files=None):
    """
    把 HTTP 请求体整理成 intake 需要的 payload。

    UPLOAD_FIELDS 里的上传文件会被存储并替换成路径；
    其它字段原样保留，交给校验 / 归一化处理。
    """
    payload = _plain_dict(data)
    uploads = _plain_dict(files) if files else {}

    for field in UPLOAD_FIELDS:
        value = uploads.get(field, payload.get(field))
        if value is None:
            continue

        if isinstance(value, (list, tuple)):
            stored = [store_upload(item, field) if isinstance(item, File) else item for item in value]
        elif isinstance(value, File):
            stored = store_upload(value, field)
        else:
            continue

        if field in LIST_FIELDS and not isinstance(stored, list):
            stored = [stored]
        elif field not in LIST_FIELDS and isinstance(stored, list):
            stored = stored[0] if stored else None
        payload[field] = stored

    return payload
