from textual import on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.events import Key
from textual.widgets import Button, Input, Label, TabbedContent, TabPane

from api.errors import ApiRequestError, ValidationError
from utils.messages import UserLoginMessage
from views.base_screen import BaseScreen
from views.modal_dialog import InputDialogModal, QuitDialogModal, SimpleDialogModal


class LoginScreen(BaseScreen):
    """
    Sign in (optionally with Google), sign up with email verification and
    password reset. Dismisses once a session exists.
    """

    def __init__(self, notice: str = ""):
        super().__init__()
        self.configure(header_sub_title="Login", show_sidebar=False)
        self._notice = notice

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with TabbedContent(id="super-tab-loginscr"):
            with TabPane("Login", id="tab-login"):
                with Vertical(id="div-login"):
                    yield Label("Email")
                    yield Input(placeholder="you@example.com", id="input-login-email")
                    yield Label("Password")
                    yield Input(
                        placeholder="*********", password=True, id="input-login-pwd"
                    )
                    with Horizontal(id="div-login-btns"):
                        yield Button("Quit", id="btn-quit")
                        yield Button("Login", id="btn-login", variant="primary")

            with TabPane("Sign up", id="tab-signup"):
                with Vertical(id="div-reg"):
                    yield Label("Name")
                    yield Input(placeholder="Jane Doe", id="input-reg-name")
                    yield Label("Email")
                    yield Input(placeholder="user@example.com", id="input-reg-email")
                    yield Label("Phone (optional)")
                    yield Input(placeholder="9876543210", id="input-reg-phone")
                    yield Label("Password")
                    yield Input(
                        placeholder="at least 6 characters",
                        password=True,
                        id="input-reg-pwd",
                    )
                    with Container(id="div-reg-btns"):
                        yield Button("Register", id="btn-reg", variant="primary")

            with TabPane("Forgot password", id="tab-forgot"):
                with Vertical(id="div-forgot"):
                    yield Label("Email")
                    yield Input(placeholder="you@example.com", id="input-forgot-email")
                    yield Button("Send reset code", id="btn-forgot-send")
                    yield Label("Reset code")
                    yield Input(placeholder="123456", id="input-forgot-otp")
                    yield Label("New password")
                    yield Input(password=True, id="input-forgot-pwd")
                    yield Button("Reset password", id="btn-forgot-reset", variant="primary")

            if self.app.state.settings.enable_google_oauth:
                with TabPane("Google", id="tab-google"):
                    with Vertical(id="div-google"):
                        yield Label("Google ID token")
                        yield Input(
                            placeholder="paste the credential from Google sign-in",
                            password=True,
                            id="input-google-credential",
                        )
                        yield Button("Continue with Google", id="btn-google", variant="primary")

    def on_mount(self):
        self.query_one("#input-login-email").focus()
        if self._notice:
            self.notify(self._notice, severity="warning", timeout=8)

    def on_key(self, event: Key) -> None:
        if event.key == "enter" and self.focused == self.query_one("#input-login-pwd"):
            self.handle_login_submit()
        if event.key == "enter" and self.focused == self.query_one("#input-reg-pwd"):
            self.handle_registration_submit()

    @on(Button.Pressed, "#btn-login")
    @work(exclusive=True)
    async def handle_login_submit(self) -> None:
        email = self.query_one("#input-login-email", Input).value.strip()
        pwd = self.query_one("#input-login-pwd", Input).value.strip()

        try:
            session = await self.app.state.session.login(email, pwd)
        except ValidationError as e:
            self.notify(e.message, severity="error")
            return
        except ApiRequestError as e:
            self.notify(e.message or "Invalid email or password.", severity="error")
            input_login_pwd = self.query_one("#input-login-pwd", Input)
            input_login_pwd.value = ""
            input_login_pwd.focus()
            input_login_pwd.add_class("-invalid")
            return

        self.notify(f"Hello {session.user.name}!")
        self.app.post_message(UserLoginMessage())
        self.dismiss()

    @on(Button.Pressed, "#btn-google")
    @work(exclusive=True)
    async def handle_google_submit(self) -> None:
        credential = self.query_one("#input-google-credential", Input).value.strip()
        if not credential:
            self.notify("Paste your Google credential first.", severity="error")
            return
        try:
            session = await self.app.state.session.google_login(credential)
        except ApiRequestError as e:
            self.notify(e.message or "Google sign-in failed.", severity="error")
            return

        self.notify(f"Hello {session.user.name}!")
        self.app.post_message(UserLoginMessage())
        self.dismiss()

    @on(Button.Pressed, "#btn-reg")
    @work(exclusive=True)
    async def handle_registration_submit(self) -> None:
        name = self.query_one("#input-reg-name", Input).value
        email = self.query_one("#input-reg-email", Input).value
        phone = self.query_one("#input-reg-phone", Input).value.strip()
        pwd = self.query_one("#input-reg-pwd", Input).value

        try:
            session = await self.app.state.session.signup(name, email, pwd, phone)
        except (ValidationError, ApiRequestError) as e:
            self.notify(e.message, severity="error")
            return

        if session is not None:
            self.notify(f"Welcome, {session.user.name}!")
            self.app.post_message(UserLoginMessage())
            self.dismiss()
            return

        token = await self.app.push_screen_wait(
            InputDialogModal(
                "Registration successful. Enter the verification code from "
                "your email, or cancel to verify later.",
                placeholder="verification code",
                primary_text="Verify",
            )
        )
        if token:
            try:
                message = await self.app.state.session.verify_email(token, email)
            except ApiRequestError as e:
                self.notify(e.message, severity="error")
            else:
                self.notify(message)
                if self.app.state.session.is_authenticated:
                    self.app.post_message(UserLoginMessage())
                    self.dismiss()
                    return
        else:
            await self.app.push_screen_wait(
                SimpleDialogModal("Please verify your email before logging in.")
            )
        self.get_child_by_type(TabbedContent).active = "tab-login"
        self.query_one("#input-login-email", Input).value = email.strip()
        self.query_one("#input-login-pwd", Input).focus()

    @on(Button.Pressed, "#btn-forgot-send")
    @work(exclusive=True)
    async def handle_forgot_send(self) -> None:
        email = self.query_one("#input-forgot-email", Input).value
        try:
            message = await self.app.state.session.forgot_password(email)
        except (ValidationError, ApiRequestError) as e:
            self.notify(e.message, severity="error")
            return
        self.notify(message)
        self.query_one("#input-forgot-otp").focus()

    @on(Button.Pressed, "#btn-forgot-reset")
    @work(exclusive=True)
    async def handle_forgot_reset(self) -> None:
        email = self.query_one("#input-forgot-email", Input).value
        otp = self.query_one("#input-forgot-otp", Input).value
        pwd = self.query_one("#input-forgot-pwd", Input).value
        try:
            message = await self.app.state.session.reset_password(email, otp, pwd)
        except (ValidationError, ApiRequestError) as e:
            self.notify(e.message, severity="error")
            return
        self.notify(message)
        self.get_child_by_type(TabbedContent).active = "tab-login"
        self.query_one("#input-login-email", Input).value = email.strip()
        self.query_one("#input-login-pwd", Input).focus()

    @on(Button.Pressed, "#btn-quit")
    def handle_quit_(self) -> None:
        self.app.push_screen(QuitDialogModal())
