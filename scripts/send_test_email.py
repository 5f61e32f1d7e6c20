from app.config import CONFIG
from app.messaging import build_win_message, mail_config_from_env, send_email

def main():
    cfg = mail_config_from_env()
    if not cfg.mail_enabled:
        raise SystemExit("Set SMTP_HOST, SMTP_USER and SMTP_PASSWORD first")

    to_email = input("Enter your email address: ").strip()
    message = build_win_message(
        CONFIG.team_name,
        "on a test day against the San Francisco Giants",
        CONFIG.site_url,
    )

    send_email(cfg, to_email, message)
    print("Sent to", to_email)

if __name__ == "__main__":
    main()
