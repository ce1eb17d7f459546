#!/usr/bin/env python3
"""
ID Photo Studio - Web API
Flask app exposing the photo pipeline and the print layout
"""

import io
import logging
import traceback
from typing import Optional

from flask import Flask, jsonify, request, send_file

from .config import (
    DPI, LOG_DIR, LAYOUT_SPACING, DEFAULT_PAPER, PAPERS, REGISTRY,
    custom_format, get_color_list, get_format, get_format_list, get_paper,
)
from .errors import IDPhotoError, InvalidSourceError, ScalingDegenerateError
from .export import encode_image, output_filename
from .geometry import EditState
from .layout import LayoutPacker, PhotoCollection
from .processor import PhotoProcessor
from .utils import GPUInfo, configure_logging, load_image, parse_color

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'webp', 'bmp', 'tif', 'tiff'}
MIMETYPES = {'png': 'image/png', 'jpeg': 'image/jpeg'}

# =============================================================================
# FLASK APP
# =============================================================================

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = 32 * 1024 * 1024  # 32MB

# =============================================================================
# PHOTO PROCESSOR (single instance)
# =============================================================================

_processor: Optional[PhotoProcessor] = None


def _get_processor() -> PhotoProcessor:
    global _processor
    if _processor is None:
        logger.info("Creating PhotoProcessor instance...")
        _processor = PhotoProcessor()
    return _processor


def set_processor(processor: Optional[PhotoProcessor]) -> None:
    """Install the processor used by the routes (None resets to lazy creation)."""
    global _processor
    _processor = processor


# =============================================================================
# ERROR HANDLERS
# =============================================================================

class ValidationError(ValueError):
    pass


def _error(message: str, error_type: str, status: int, details: Optional[str] = None):
    body = {'error': message, 'error_type': error_type}
    if details:
        body['error_details'] = details
    return jsonify(body), status


@app.errorhandler(413)
def request_entity_too_large(error):
    return _error('File too large. Maximum file size is 32MB.', 'file_too_large', 413)


@app.errorhandler(500)
def internal_server_error(error):
    logger.error(f"Internal server error: {error}")
    return _error('Internal server error', 'server_error', 500, str(error))


@app.errorhandler(ValidationError)
def validation_error(error):
    return _error(str(error), 'validation_error', 400)


@app.errorhandler(InvalidSourceError)
def invalid_source(error):
    logger.warning(f"Rejected source image: {error}")
    return _error(str(error), 'invalid_source', 400)


@app.errorhandler(ScalingDegenerateError)
def degenerate_size(error):
    return _error(str(error), 'invalid_size', 400)


@app.errorhandler(IDPhotoError)
def processing_error(error):
    logger.error(f"Processing failed: {error}")
    logger.error(traceback.format_exc())
    return _error(f'Processing failed: {error}', type(error).__name__, 500)


# =============================================================================
# HELPERS
# =============================================================================

def _allowed_file(filename: str) -> bool:
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def _uploaded(field_names):
    for name in field_names:
        file = request.files.get(name)
        if file is not None and file.filename:
            return file
    raise ValidationError('No file uploaded')


def _check_upload(file) -> None:
    if not _allowed_file(file.filename):
        raise ValidationError(
            f"Invalid file type. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS)).upper()}"
        )


def _form_float(name: str, default: float) -> float:
    value = request.form.get(name, '')
    if value == '':
        return default
    try:
        return float(value)
    except ValueError:
        raise ValidationError(f"'{name}' must be a number, got {value!r}") from None


def _form_bool(name: str) -> bool:
    return request.form.get(name, '').lower() in ('1', 'true', 'yes', 'on')


def _output_format() -> str:
    output = request.form.get('output', 'png').lower()
    if output == 'jpg':
        output = 'jpeg'
    if output not in MIMETYPES:
        raise ValidationError("'output' must be png or jpeg")
    return output


def _resolve_format():
    format_key = request.form.get('format', 'passport')
    if format_key not in REGISTRY:
        raise ValidationError(f"Invalid photo format. Available: {', '.join(REGISTRY.keys())}")
    if format_key == 'custom':
        base = get_format('custom')
        return custom_format(
            _form_float('custom_width', base.size_mm[0]),
            _form_float('custom_height', base.size_mm[1]),
        )
    return get_format(format_key)


# =============================================================================
# ROUTES
# =============================================================================

@app.route('/api/formats')
def get_formats():
    formats = get_format_list()
    for item in formats:
        r, g, b = REGISTRY.get(item['key']).bg_color
        item['bg_color'] = f'#{r:02x}{g:02x}{b:02x}'
    return jsonify(formats)


@app.route('/api/colors')
def get_colors():
    return jsonify(get_color_list())


@app.route('/api/papers')
def get_papers():
    return jsonify([
        {'key': p.key, 'name': p.name, 'size': [p.width_px, p.height_px], 'dpi': DPI}
        for p in PAPERS.values()
    ])


@app.route('/api/process', methods=['POST'])
def process():
    logger.info("=== New photo processing request ===")
    file = _uploaded(('image', 'file'))
    _check_upload(file)

    fmt = _resolve_format()
    output = _output_format()
    try:
        background = parse_color(request.form.get('bg'), default=fmt.bg_color)
    except ValueError:
        raise ValidationError(f"Invalid background color: {request.form.get('bg')!r}") from None

    source = load_image(file.read())
    processor = _get_processor()

    if _form_bool('auto_frame'):
        edit = processor.auto_frame(source, fmt)
    else:
        edit = EditState(
            zoom=_form_float('zoom', 1.0),
            rotation=_form_float('rotation', 0.0),
            pan=(_form_float('pan_x', 0.0), _form_float('pan_y', 0.0)),
        )

    result = processor.process(source, fmt, edit, background_color=background)
    data = encode_image(result.photo, output)
    logger.info(f"Processing successful: {fmt.key} {result.photo.size} ({result.mask_method})")

    response = send_file(
        io.BytesIO(data),
        mimetype=MIMETYPES[output],
        download_name=output_filename(fmt.file_prefix, output),
    )
    response.headers['X-Mask-Method'] = result.mask_method
    response.headers['X-Photo-Size'] = f'{result.photo.width}x{result.photo.height}'
    response.headers['X-Edit-State'] = f'{edit.zoom:.2f},{edit.rotation:.1f},{edit.pan[0]:.1f},{edit.pan[1]:.1f}'
    return response


@app.route('/api/layout', methods=['POST'])
def layout():
    logger.info("=== New layout request ===")
    files = [f for f in request.files.getlist('images') if f.filename]
    if not files:
        raise ValidationError('No images uploaded')
    for file in files:
        _check_upload(file)

    paper = get_paper(request.form.get('paper', DEFAULT_PAPER))
    if paper is None:
        raise ValidationError(f"Invalid paper. Available: {', '.join(PAPERS)}")
    fmt = _resolve_format()
    spacing = max(0, int(_form_float('spacing', LAYOUT_SPACING)))
    copies = max(1, int(_form_float('copies', 1)))

    collection = PhotoCollection()
    for file in files:
        image = load_image(file.read()).convert('RGB')
        for _ in range(copies):
            collection.add(image, fmt)

    packer = LayoutPacker(paper, spacing=spacing)
    arranged = packer.auto_arrange(collection)
    sheet = packer.render_layout(
        collection,
        guides=_form_bool('guides'),
        cut_marks=_form_bool('cut_marks'),
    )

    response = send_file(
        io.BytesIO(encode_image(sheet, 'png')),
        mimetype='image/png',
        download_name=output_filename(f'layout_{paper.key}', 'png'),
    )
    response.headers['X-Placed'] = str(arranged.placed_count)
    response.headers['X-Unplaced'] = str(len(arranged.unplaced))
    return response


@app.route('/api/health')
def health_check():
    processor = _get_processor()
    segmenter = processor.segmenter
    return jsonify({
        'status': 'ok',
        'segmenter': type(segmenter).__name__,
        'session_initialized': getattr(segmenter, '_session', None) is not None,
        'session_init_count': getattr(segmenter, 'init_count', 0),
    })


@app.route('/api/gpu')
def gpu_info():
    info = GPUInfo.get_info()
    return jsonify({
        'cuda_available': info.get('available', False),
        'device': info.get('device', 'CPU'),
        'gpu_name': info.get('name'),
        'gpu_memory_total': f"{info['vram_total_gb']} GB" if info.get('vram_total_gb') else None,
        'gpu_memory_free': f"{info['vram_free_gb']} GB" if info.get('vram_free_gb') else None,
    })


# =============================================================================
# SERVER
# =============================================================================

def run_server(host='127.0.0.1', port=8080, debug=False):
    log_path = configure_logging(LOG_DIR)
    logger.info("=" * 70)
    logger.info("ID Photo Studio - Web API")
    logger.info("=" * 70)
    GPUInfo.print_info()
    logger.info(f"Log file: {log_path}")
    logger.info(f"Starting server at http://{host}:{port}")
    logger.info("=" * 70)
    app.run(host=host, port=port, debug=debug)


if __name__ == '__main__':
    run_server(debug=True)
