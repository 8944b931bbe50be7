from __future__ import annotations


class HierarchyError(Exception):
    """ギャラリー階層の操作で発生する例外の基底クラス。

    `status` と `error_code` はそのままAPIレスポンスに反映される。
    """

    status = 500
    error_code = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(HierarchyError):
    """対象が存在しない、または呼び出し元から見えない場合の例外。"""

    status = 404
    error_code = "not_found"


class ForbiddenError(HierarchyError):
    """対象は見えているが操作権限がない場合の例外。"""

    status = 403
    error_code = "forbidden"


class BadRequestError(HierarchyError):
    """入力値や状態が操作の前提を満たさない場合の例外。"""

    status = 400
    error_code = "bad_request"


class QuotaExceededError(BadRequestError):
    """所有数の上限に達している場合の例外。"""

    error_code = "quota_exceeded"


class ConflictError(HierarchyError):
    """既存の行と重複する登録を行おうとした場合の例外。"""

    status = 409
    error_code = "conflict"


class BatchError(HierarchyError):
    """書き込みバッチのコミットに失敗した場合の例外。"""

    status = 500
    error_code = "internal_error"
