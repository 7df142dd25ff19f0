import os
import secrets

from .models import (
    db,
    User,
    Service,
    CaseStudy,
    TeamMember,
    Testimonial,
    WorkingProcess,
)


def seed_database():
    env_password = os.environ.get('ADMIN_PASSWORD') or ''

    # Always sync admin password with env var on startup
    if env_password:
        existing_admin = User.query.filter_by(username='admin').first()
        if existing_admin:
            existing_admin.set_password(env_password)
            db.session.commit()

    if User.query.first():
        return

    if not env_password:
        env_password = secrets.token_urlsafe(16)
        print(
            '[seed] ADMIN_PASSWORD not set. Seeded admin with a random password. '
            'Set ADMIN_PASSWORD and restart to rotate it to a known value.'
        )
    admin = User(username='admin', email='admin@example.com')
    admin.set_password(env_password)
    db.session.add(admin)

    if Service.query.first() is None:
        seed_sample_content()
    db.session.commit()


def seed_sample_content():
    services = [
        ('Search engine optimization', 'Rank higher for the searches your customers already make, with technical fixes, content and link building.'),
        ('Pay-per-click advertising', 'Paid search and display campaigns tuned for cost per acquisition, not clicks.'),
        ('Social Media Marketing', 'Channel strategy, content calendars and community management that turn followers into buyers.'),
        ('Email Marketing', 'Lifecycle campaigns and newsletters segmented by behaviour and measured by revenue.'),
        ('Content Creation', 'Articles, video and landing pages written for your audience and built to convert.'),
        ('Analytics and Tracking', 'Clean tracking, dashboards and reporting so every marketing decision has data behind it.'),
    ]
    for i, (title, description) in enumerate(services):
        db.session.add(Service(title=title, description=description, sort_order=i, is_active=True))

    case_studies = [
        ('Local restaurant PPC', 'For a local restaurant, we implemented a targeted PPC campaign that resulted in a 50% increase in website traffic and a 25% increase in sales.'),
        ('B2B software SEO', 'For a B2B software company, we developed an SEO strategy that resulted in a first page ranking for key keywords and a 200% increase in organic traffic.'),
        ('Retail social campaign', 'For a national retail chain, we created a social media marketing campaign that increased followers by 25% and generated a 20% increase in online sales.'),
    ]
    for i, (title, description) in enumerate(case_studies):
        db.session.add(CaseStudy(title=title, short_description=description, sort_order=i, is_active=True))

    steps = [
        ('Consultation', 'We discuss your business goals, target audience and current marketing efforts so our services fit your requirements.'),
        ('Research and Strategy Development', 'Market research and competitive analysis turn into a data-driven roadmap aligned with your objectives.'),
        ('Implementation', 'We execute the strategy across every relevant channel with consistent messaging from day one.'),
        ('Monitoring and Optimization', 'Key metrics are tracked continuously and campaigns adjusted to maximize return.'),
        ('Reporting and Communication', 'Regular reports with clear insights and recommendations, plus open lines for questions.'),
        ('Continual Improvement', 'Strategies are refined as results and market conditions change.'),
    ]
    for i, (title, description) in enumerate(steps):
        db.session.add(WorkingProcess(step_no=i + 1, title=title, description=description, sort_order=i, is_active=True))

    team = [
        ('John Smith', 'CEO and Founder'),
        ('Jane Doe', 'Director of Operations'),
        ('Michael Brown', 'Senior SEO Specialist'),
        ('Emily Johnson', 'PPC Manager'),
        ('Brian Williams', 'Social Media Specialist'),
        ('Sarah Kim', 'Content Creator'),
    ]
    for i, (name, role) in enumerate(team):
        db.session.add(TeamMember(
            name=name,
            role=role,
            socials_json='{"linkedin": "https://www.linkedin.com/"}',
            sort_order=i,
            is_active=True,
        ))

    db.session.add(Testimonial(
        name='John Smith',
        role_company='Marketing Director at XYZ Corp',
        message='We have been working with Positivus for the past year and have seen a significant increase in website traffic and leads as a result of their efforts.',
        rating=5,
        sort_order=0,
        is_active=True,
    ))
