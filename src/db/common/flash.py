from fastapi import Request, status
from fastapi.responses import RedirectResponse
from pydantic import ValidationError
from typing import Any, Dict, List

_FLASH_KEY = "_flashes"


def flash(request: Request, category: str, message: str) -> None:
    """Lưu flash message vào session để hiển thị ở trang kế tiếp"""
    flashes = request.session.get(_FLASH_KEY, [])
    flashes.append({"category": category, "message": message})
    request.session[_FLASH_KEY] = flashes


def pop_flashes(request: Request) -> List[Dict[str, str]]:
    """Lấy và xóa toàn bộ flash message trong session"""
    return request.session.pop(_FLASH_KEY, [])


def redirect(url: str) -> RedirectResponse:
    """Redirect sau POST (303 See Other)"""
    return RedirectResponse(url=url, status_code=status.HTTP_303_SEE_OTHER)


def error_message(exc: Exception) -> str:
    """Chuyển lỗi thành message ngắn gọn cho flash"""
    if isinstance(exc, ValidationError):
        messages = []
        for error in exc.errors():
            message = error.get("msg", "Invalid value")
            # pydantic thêm tiền tố "Value error, " cho lỗi từ validator
            messages.append(message.removeprefix("Value error, "))
        return "; ".join(messages)
    return getattr(exc, "message", str(exc))


def page_context(request: Request, **data: Any) -> Dict[str, Any]:
    """View model cho trang GET: dữ liệu trang kèm flash messages"""
    data["flashes"] = pop_flashes(request)
    return data
