"""HTML fragments for the public upload and view pages."""

from __future__ import annotations

from html import escape

from .models import DocumentEntry

_STYLE = """
<style>
  body { font-family: Arial, sans-serif; margin: 40px; text-align: center; }
  form { border: 1px solid #ddd; padding: 20px; display: inline-block; border-radius: 10px; }
  button { background: #007bff; color: white; border: none; padding: 10px 20px; border-radius: 6px; cursor: pointer; }
  button:hover { background: #0056b3; }
  img.qr { border: 1px solid #ccc; padding: 10px; border-radius: 10px; }
  a.again { display: inline-block; background: #28a745; color: white; text-decoration: none; padding: 10px 16px; border-radius: 6px; }
  code { word-break: break-all; }
</style>
"""


def _page(title: str, body: str) -> str:
    return (
        "<!doctype html><html><head><meta charset=\"utf-8\">"
        f"<title>{escape(title)}</title>{_STYLE}</head><body>{body}</body></html>"
    )


def upload_form_page(max_upload_size: int) -> str:
    limit_mb = max_upload_size / (1024 * 1024)
    return _page(
        "PDF QR generator",
        f"""
        <h1>PDF QR generator</h1>
        <form action="/upload" method="post" enctype="multipart/form-data">
          <label for="pdf">Choose a PDF (max {limit_mb:.0f} MB):</label><br/>
          <input id="pdf" type="file" name="pdf" accept="application/pdf" required />
          <br/><br/>
          <button type="submit">Upload and generate QR</button>
        </form>
        """,
    )


def upload_result_page(entry: DocumentEntry, view_url: str) -> str:
    name = escape(entry.original_name)
    token = escape(entry.token)
    url = escape(view_url, quote=True)
    if entry.qr_storage_key:
        qr_block = f"""
        <h3>QR preview</h3>
        <img class="qr" src="/qr/{token}" alt="QR code" width="300"/><br/><br/>
        <a href="/qr/{token}?download=1">Download QR (PNG)</a><br/><br/>
        """
    else:
        qr_block = "<p>The QR image could not be generated yet; it will be created on first request.</p>"
    expiry = (
        entry.expires_at.strftime("%Y-%m-%d %H:%M UTC")
        if entry.expires_at
        else "never"
    )
    return _page(
        "Upload complete",
        f"""
        <h2>File uploaded</h2>
        <p><strong>File:</strong> {name}</p>
        <p><strong>Token:</strong> <code>{token}</code></p>
        <p><strong>Document URL:</strong> <a href="{url}" target="_blank">{url}</a></p>
        <p><strong>Expires:</strong> {expiry}</p>
        {qr_block}
        <a class="again" href="/">Upload another PDF</a>
        """,
    )


def error_page(title: str, message: str) -> str:
    return _page(
        title,
        f"<h2>{escape(title)}</h2><p>{escape(message)}</p>"
        '<p><a href="/">Back to upload</a></p>',
    )


__all__ = ["error_page", "upload_form_page", "upload_result_page"]
