from surveyscore.email import build_message


def test_build_message():
    message = build_message("r@example.com", "Your report", "<p>Hi</p>", "noreply@example.com", "Survey Reports")
    assert message["From"] == "Survey Reports <noreply@example.com>"
    assert message["To"] == "r@example.com"
    assert message["Subject"] == "Your report"
    assert message.get_content_type() == "text/html"
    assert "<p>Hi</p>" in message.get_content()
