"""
AI analysis of gallery images.

The OpenAI chat API (a vision capable model) describes the product on an
image: name, brand, category, specifications, tags, a description and the
image quality. The result is stored on ProductImage.analysis so it is only
paid for once; re-analysis overwrites it.
"""
import json
import logging
from django.conf import settings
from django.utils import timezone
from backend.core.exceptions import ImageAnalysisError
from .matcher import _extract_json_object

logger = logging.getLogger(__name__)

CONTEXT_PRODUCTS = 50

ANALYSIS_FORMAT = {
    'productInfo': {'name': 'string', 'brand': 'string', 'category': 'string', 'subcategory': 'string|null',
                    'model': 'string|null', 'color': 'string|null', 'condition': 'new|used|refurbished'},
    'technicalSpecs': {'<name>': '<value>'},
    'tags': ['string'],
    'description': 'e-commerce description of the product',
    'confidence': '0..100',
    'suggestedProducts': [{'sku': 'string', 'name': 'string', 'similarity': '0..100'}],
    'imageQuality': {'resolution': 'string', 'clarity': 'excellent|good|fair|poor', 'hasWatermark': 'bool',
                     'backgroundType': 'white|transparent|colored|complex', 'recommendations': ['string']},
    'additionalInfo': {'textDetected': ['string'], 'logosBrands': ['string'], 'packaging': 'bool',
                       'multipleProducts': 'bool', 'productCount': 'number'},
}


def vision_enabled():
    return bool(settings.OPENAI_API_KEY)


def build_prompt(existing_products=None, categories=None):
    prompt = (
        "Analyze this product image and extract every relevant detail for an online catalog. "
        f"Reply with JSON only, in this format: {json.dumps(ANALYSIS_FORMAT)}. "
        "Use null for anything you cannot see or infer."
    )
    if existing_products:
        listing = '\n'.join(f"- {p['sku']}: {p['name']} ({p.get('brand') or ''})" for p in existing_products)
        prompt += (f"\nProducts already in the catalog:\n{listing}\n"
                   "List the ones the image could show in suggestedProducts.")
    if categories:
        prompt += f"\nAvailable categories: {', '.join(categories)}"
    return prompt


def analyze_image(image_url, existing_products=None, categories=None):
    """Ask the vision model about one image; returns the parsed analysis dict"""
    from openai import OpenAI

    client = OpenAI(api_key=settings.OPENAI_API_KEY)
    completion = client.chat.completions.create(
        model=settings.IMAGE_VISION_MODEL,
        messages=[{
            'role': 'user',
            'content': [
                {'type': 'text', 'text': build_prompt(existing_products, categories)},
                {'type': 'image_url', 'image_url': {'url': image_url, 'detail': 'high'}},
            ],
        }],
        max_tokens=settings.IMAGE_VISION_MAX_TOKENS,
        temperature=0.2,
    )
    content = completion.choices[0].message.content or ''
    if not content:
        raise ValueError('Empty response from the vision model')
    return json.loads(_extract_json_object(content))


def analyze_product_image(image, force=False):
    """
    Fill image.analysis. An existing analysis is kept unless force is set.
    Raises ImageAnalysisError when AI is not configured or the call fails.
    """
    if image.analysis and not force:
        return image
    if not vision_enabled():
        raise ImageAnalysisError('Image analysis is not configured.', code='ai_unavailable')

    from .models import Product, Category

    products = Product.objects.filter(distributor_code=image.distributor_code).select_related('brand') \
        .order_by('-updated_at')[:CONTEXT_PRODUCTS]
    existing = [{'sku': product.sku, 'name': product.name, 'brand': product.brand.name if product.brand else ''}
                for product in products]
    categories = list(Category.objects.filter(parent__isnull=True).values_list('name', flat=True))
    try:
        analysis = analyze_image(image.image_url, existing, categories)
    except Exception as e:
        logger.warning(f"Image analysis failed for image {image.id}: {str(e)}")
        raise ImageAnalysisError(f'Image analysis failed: {str(e)}')
    if not isinstance(analysis, dict):
        raise ImageAnalysisError('Image analysis returned an unexpected format.')

    analysis['analyzedAt'] = timezone.now().isoformat()
    analysis['model'] = settings.IMAGE_VISION_MODEL
    image.analysis = analysis
    image.save(update_fields=['analysis'])
    logger.info(f"Analyzed image {image.id} ({image.filename or image.image_url})")
    return image
