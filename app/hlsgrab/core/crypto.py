"""
加密解密模块
支持 AES-128-CBC 加密的 HLS 片段解密，以及按密钥 URL 去重的密钥缓存
"""

import logging
import threading
from concurrent.futures import Future
from typing import Callable, Dict, Optional

from Crypto.Cipher import AES
from Crypto.Util.Padding import unpad

from .errors import DecryptionError, UnsupportedEncryptionError
from .models import FetchTask, KeyDirective

logger = logging.getLogger(__name__)

KEY_SIZE = 16


def derive_iv(sequence_number: int) -> bytes:
    """
    根据序列号生成 IV

    没有显式 IV 时，把序列号编码为 16 字节大端整数（最低字节在最后）

    Args:
        sequence_number: 片段序列号

    Returns:
        bytes: 16 字节 IV
    """
    if sequence_number < 0:
        raise ValueError(f"序列号不能为负: {sequence_number}")
    return sequence_number.to_bytes(16, byteorder='big')


def iv_for_task(task: FetchTask, use_media_sequence: bool = False) -> bytes:
    """取任务的 IV：显式 IV 优先，否则由序列号派生"""
    key = task.active_key
    if key is not None and key.explicit_iv is not None:
        return key.explicit_iv
    segment = task.segment
    return derive_iv(segment.media_sequence if use_media_sequence else segment.sequence_index)


def check_supported(key: KeyDirective):
    """只支持 AES-128，其余方式（SAMPLE-AES、DRM 等）直接拒绝"""
    if not key.is_aes128():
        raise UnsupportedEncryptionError(key.method)
    if not key.key_url:
        raise UnsupportedEncryptionError(f"{key.method} (缺少 URI)")


class KeyCache:
    """
    单次下载内的密钥缓存

    同一个 key_url 最多请求一次：第一个调用者负责下载，
    并发的其他调用者等待同一个结果。
    """

    def __init__(self, loader: Callable[[str], bytes]):
        """
        Args:
            loader: 根据 URL 下载密钥字节的函数
        """
        self._loader = loader
        self._lock = threading.Lock()
        self._futures: Dict[str, Future] = {}
        self.fetch_count = 0

    def get(self, key_url: str) -> bytes:
        with self._lock:
            future = self._futures.get(key_url)
            owner = future is None
            if owner:
                future = Future()
                self._futures[key_url] = future
                self.fetch_count += 1

        if owner:
            try:
                key = self._loader(key_url)
                if len(key) != KEY_SIZE:
                    raise DecryptionError(f"密钥长度异常: {len(key)} bytes (期望 {KEY_SIZE} bytes)")
                logger.info(f"成功下载密钥: {key_url[:80]}")
                future.set_result(key)
            except BaseException as e:
                future.set_exception(e)
                raise

        return future.result()

    def __len__(self):
        with self._lock:
            return len(self._futures)


class AESDecryptor:
    """
    AES-128-CBC 解密器

    用于解密 HLS/M3U8 加密的 TS 片段
    """

    @staticmethod
    def decrypt(encrypted_data: bytes, key: bytes, iv: bytes) -> bytes:
        """
        解密数据并去除 PKCS#7 填充

        Raises:
            DecryptionError: 数据长度不是块大小的整数倍或填充无效
        """
        if len(key) != KEY_SIZE:
            raise DecryptionError(f"密钥长度异常: {len(key)} bytes")
        if len(iv) != AES.block_size:
            raise DecryptionError(f"IV 长度异常: {len(iv)} bytes")
        if not encrypted_data or len(encrypted_data) % AES.block_size:
            raise DecryptionError(f"密文长度不是 {AES.block_size} 的整数倍: {len(encrypted_data)}")

        cipher = AES.new(key, AES.MODE_CBC, iv)
        decrypted_data = cipher.decrypt(encrypted_data)
        try:
            return unpad(decrypted_data, AES.block_size)
        except ValueError as e:
            raise DecryptionError(f"PKCS#7 填充无效（密钥或 IV 错误）: {e}") from e
