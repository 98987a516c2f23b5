import os
from typing import Dict, Any
from datetime import datetime

class EmailTemplateLoader:
    """Utility class để load và render email templates"""

    def __init__(self, template_dir: str = None):
        if template_dir is None:
            # Mặc định là thư mục templates trong cùng thư mục với file này
            current_dir = os.path.dirname(os.path.abspath(__file__))
            template_dir = os.path.join(current_dir, 'templates')

        self.template_dir = template_dir

    def load_template(self, template_name: str) -> str:
        """
        Load nội dung template HTML

        Raises:
            FileNotFoundError: Nếu template không tồn tại
        """
        template_path = os.path.join(self.template_dir, template_name)

        if not os.path.exists(template_path):
            raise FileNotFoundError(f"Template '{template_name}' không tồn tại tại {template_path}")

        with open(template_path, 'r', encoding='utf-8') as f:
            return f.read()

    def render_template(self, template_name: str, context: Dict[str, Any]) -> str:
        """Thay các biến {{ key }} trong template bằng giá trị trong context"""
        rendered = self.load_template(template_name)
        for key, value in context.items():
            placeholder = f"{{{{ {key} }}}}"
            rendered = rendered.replace(placeholder, str(value))

        return rendered

    def render_verification_email(self, verification_url: str, expires_in_minutes: int) -> str:
        """Email xác thực tài khoản sau khi đăng ký"""
        context = {
            'verification_url': verification_url,
            'expires_in_minutes': expires_in_minutes,
            'sent_at': datetime.now().strftime('%d/%m/%Y %H:%M')
        }

        return self.render_template('verification_email.html', context)

    def render_reset_password_email(self, reset_url: str, expires_in_minutes: int) -> str:
        """Email chứa link đặt lại mật khẩu"""
        context = {
            'reset_url': reset_url,
            'expires_in_minutes': expires_in_minutes,
            'sent_at': datetime.now().strftime('%d/%m/%Y %H:%M')
        }

        return self.render_template('reset_password_email.html', context)

# Instance mặc định
template_loader = EmailTemplateLoader()
